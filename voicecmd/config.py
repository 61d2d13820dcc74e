"""
Configuration du pipeline (audio, calibration, reconnaissance).

Pourquoi: regrouper toutes les constantes numeriques en un seul endroit,
avec des valeurs par defaut documentees et validees a la construction.
Comment: dataclasses figees + validation dans __post_init__; le tout se
serialise en dict/JSON comme un simple blob cle-valeur.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

from voicecmd.errors import ConfigurationError

# Methodes de transformee spectrale supportees.
SPECTRUM_METHODS = ("fft", "dft")


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


@dataclass(frozen=True)
class AudioConfig:
    """
    Parametres du front-end: decoupage en frames, VAD et MFCC.

    16 kHz, 256/128 -> frames de 16 ms avec un hop de 8 ms (50% de recouvrement).
    """

    sample_rate: int = 16000
    frame_size: int = 256
    hop_size: int = 128
    vad_threshold: float = 0.002
    n_coeffs: int = 6
    n_mels: int = 26
    spectrum: str = "fft"

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ConfigurationError(f"sample_rate invalide: {self.sample_rate}")
        if self.frame_size <= 0:
            raise ConfigurationError(f"frame_size invalide: {self.frame_size}")
        if self.hop_size <= 0 or self.hop_size >= self.frame_size:
            raise ConfigurationError(
                f"hop_size doit etre dans ]0, frame_size[: hop={self.hop_size}, frame={self.frame_size}"
            )
        if self.spectrum not in SPECTRUM_METHODS:
            raise ConfigurationError(f"Methode spectrale inconnue: {self.spectrum!r}")
        # La FFT radix-2 impose une taille en puissance de deux.
        if self.spectrum == "fft" and not is_power_of_two(self.frame_size):
            raise ConfigurationError(
                f"frame_size={self.frame_size} n'est pas une puissance de deux (requis par spectrum='fft')"
            )
        if self.vad_threshold < 0.0:
            raise ConfigurationError(f"vad_threshold negatif: {self.vad_threshold}")
        if self.n_mels <= 0:
            raise ConfigurationError(f"n_mels invalide: {self.n_mels}")
        if not 0 < self.n_coeffs <= self.n_mels:
            raise ConfigurationError(f"n_coeffs doit etre dans ]0, n_mels]: {self.n_coeffs}")

    @property
    def n_bins(self) -> int:
        # Nombre de bins du spectre de magnitude (F/2).
        return self.frame_size // 2

    @property
    def frame_duration_s(self) -> float:
        return self.frame_size / float(self.sample_rate)

    @property
    def hop_duration_s(self) -> float:
        return self.hop_size / float(self.sample_rate)


@dataclass(frozen=True)
class CalibrationConfig:
    """Parametres de la session de calibration et du seuil automatique."""

    min_duration_s: float = 0.15
    max_duration_s: float = 0.6
    silence_timeout_s: float = 0.08
    repetitions: int = 3
    min_frames: int = 5
    threshold_floor: float = 0.05

    def __post_init__(self) -> None:
        if self.min_duration_s < 0.0 or self.max_duration_s <= self.min_duration_s:
            raise ConfigurationError(
                f"Durees invalides: min={self.min_duration_s}, max={self.max_duration_s}"
            )
        if self.silence_timeout_s <= 0.0:
            raise ConfigurationError(f"silence_timeout_s invalide: {self.silence_timeout_s}")
        if self.repetitions < 1:
            raise ConfigurationError(f"repetitions invalide: {self.repetitions}")
        # Le builder a besoin d'au moins 5 frames pour encadrer l'onset.
        if self.min_frames < 5:
            raise ConfigurationError(f"min_frames doit etre >= 5: {self.min_frames}")
        if self.threshold_floor <= 0.0:
            raise ConfigurationError(f"threshold_floor doit etre > 0: {self.threshold_floor}")


@dataclass(frozen=True)
class RecognizerConfig:
    """Parametres du matching competitif temps reel."""

    min_frames_required: int = 2
    margin_factor: float = 0.8
    delta_weight: float = 0.3
    cooldown_s: float = 0.15
    use_delta: bool = True
    # Seuil de repli si les templates n'embarquent pas de seuil auto.
    frame_threshold: float = 12.0

    def __post_init__(self) -> None:
        if self.min_frames_required < 1:
            raise ConfigurationError(f"min_frames_required invalide: {self.min_frames_required}")
        if not 0.0 < self.margin_factor <= 1.0:
            raise ConfigurationError(f"margin_factor doit etre dans ]0, 1]: {self.margin_factor}")
        if not 0.0 <= self.delta_weight <= 1.0:
            raise ConfigurationError(f"delta_weight doit etre dans [0, 1]: {self.delta_weight}")
        if self.cooldown_s < 0.0:
            raise ConfigurationError(f"cooldown_s negatif: {self.cooldown_s}")
        if self.frame_threshold <= 0.0:
            raise ConfigurationError(f"frame_threshold doit etre > 0: {self.frame_threshold}")


def _section_from_dict(cls, data: Mapping[str, Any] | None):
    """
    Construit une section de config en refusant les cles inconnues.

    Pourquoi: une faute de frappe dans le JSON ne doit pas etre ignoree.
    """
    if data is None:
        return cls()
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Cles inconnues pour {cls.__name__}: {', '.join(unknown)}")
    try:
        return cls(**dict(data))
    except TypeError as exc:
        raise ConfigurationError(str(exc)) from exc


@dataclass(frozen=True)
class VoiceConfig:
    """
    Configuration complete, telle qu'echangee avec l'hote.

    Pourquoi: l'application cliente persiste la config comme un blob opaque.
    Comment: trois sections independantes, chacune validee a la construction.
    """

    audio: AudioConfig = field(default_factory=AudioConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    recognizer: RecognizerConfig = field(default_factory=RecognizerConfig)

    def to_dict(self) -> dict:
        return {
            "audio": asdict(self.audio),
            "calibration": asdict(self.calibration),
            "recognizer": asdict(self.recognizer),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VoiceConfig":
        unknown = sorted(set(data) - {"audio", "calibration", "recognizer"})
        if unknown:
            raise ConfigurationError(f"Sections inconnues: {', '.join(unknown)}")
        return cls(
            audio=_section_from_dict(AudioConfig, data.get("audio")),
            calibration=_section_from_dict(CalibrationConfig, data.get("calibration")),
            recognizer=_section_from_dict(RecognizerConfig, data.get("recognizer")),
        )

    def save(self, path: Path) -> None:
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> "VoiceConfig":
        """
        Charge une config JSON; fichier absent -> valeurs par defaut.

        Pourquoi: la config est optionnelle, seules les surcharges comptent.
        """
        if not path.exists():
            return cls()
        return cls.from_dict(json.loads(path.read_text(encoding="utf-8")))

"""
Decoupage audio en frames et detection d'activite vocale (VAD).

Pourquoi: transformer un flux d'echantillons continu en frames de taille
fixe qui se recouvrent, et ne laisser passer que les frames parlees.
Comment: buffer de F echantillons decale de H a chaque frame emise, seuil
d'energie (somme des carres). Quelques utilitaires d'E/S WAV servent au
rejeu hors ligne.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

import numpy as np
import soundfile as sf

from voicecmd.config import AudioConfig

EnergyObserver = Callable[[float], None]


def list_wav_files(directory: Path) -> list[Path]:
    """
    Liste triee des fichiers WAV presents dans un dossier.

    Pourquoi: ordre stable pour le rejeu et la reproductibilite.
    """
    return sorted([p for p in directory.glob("*.wav") if p.is_file()])


def load_mono_audio(path: Path) -> tuple[np.ndarray, int]:
    """
    Charge un fichier audio en mono float32.

    Retourne le signal (1D) et la frequence d'echantillonnage. On supprime
    l'offset DC qui fausserait l'energie des frames.
    """
    audio, sample_rate = sf.read(str(path), always_2d=True, dtype="float32")
    # Conversion multi-canal -> mono par moyenne.
    mono = audio.mean(axis=1).astype(np.float32)
    mono = mono - float(np.mean(mono)) if mono.size else mono
    return mono, int(sample_rate)


def resample_linear(samples: np.ndarray, source_sr: int, target_sr: int) -> np.ndarray:
    """
    Reechantillonne lineairement un signal 1D vers target_sr.

    Pourquoi: le front-end MFCC est construit pour une seule frequence.
    Comment: interpolation lineaire sur une base temporelle normalisee.
    """
    if source_sr == target_sr or samples.size == 0:
        return samples.astype(np.float32, copy=False)
    n_out = int(round(samples.size * (target_sr / source_sr)))
    if n_out <= 1:
        return np.zeros((0,), dtype=np.float32)
    t_in = np.linspace(0.0, 1.0, num=samples.size, endpoint=False, dtype=np.float32)
    t_out = np.linspace(0.0, 1.0, num=n_out, endpoint=False, dtype=np.float32)
    return np.interp(t_out, t_in, samples).astype(np.float32)


def frame_energy(samples: np.ndarray) -> float:
    # Energie brute: somme des carres (pas de moyenne).
    x = np.asarray(samples, dtype=np.float64)
    return float(np.dot(x, x))


@dataclass(frozen=True)
class Frame:
    """Une frame emise par le segmenteur, voisee ou non."""

    index: int
    samples: np.ndarray
    energy: float
    voiced: bool


class FrameSegmenter:
    """
    Buffer de F echantillons qui emet une frame tous les H echantillons.

    Pourquoi: garder le recouvrement (F - H) entre frames successives sans
    reallouer a chaque bloc micro.
    Comment: on remplit le buffer; des qu'il est plein on emet une copie,
    puis on decale de H vers la gauche. La VAD marque les frames dont
    l'energie est sous le seuil; l'observateur d'energie recoit toutes les
    frames, voisees ou non.
    """

    def __init__(self, config: AudioConfig | None = None, on_energy: Optional[EnergyObserver] = None):
        self.config = config or AudioConfig()
        self.frame_size = self.config.frame_size
        self.hop_size = self.config.hop_size
        self.vad_threshold = float(self.config.vad_threshold)
        self.on_energy = on_energy
        self.buffer = np.zeros((self.frame_size,), dtype=np.float32)
        self.position = 0
        self.frames_emitted = 0

    def reset(self) -> None:
        self.buffer[:] = 0.0
        self.position = 0

    def push(self, samples: np.ndarray) -> list[Frame]:
        """
        Ajoute un bloc d'echantillons et retourne les frames completees.

        Pourquoi: le bloc micro n'a aucune raison d'etre aligne sur le hop.
        Comment: copie par tranches jusqu'a remplir le buffer, emission,
        decalage de H, et ainsi de suite jusqu'a epuisement du bloc.
        """
        data = np.asarray(samples, dtype=np.float32).reshape(-1)
        frames: list[Frame] = []
        offset = 0
        while offset < data.size:
            n = min(self.frame_size - self.position, data.size - offset)
            self.buffer[self.position:self.position + n] = data[offset:offset + n]
            self.position += n
            offset += n
            if self.position >= self.frame_size:
                frames.append(self._emit())
                # Decalage de H: on garde les F - H derniers echantillons.
                keep = self.frame_size - self.hop_size
                self.buffer[:keep] = self.buffer[self.hop_size:]
                self.position = keep
        return frames

    def voiced(self, samples: np.ndarray) -> list[np.ndarray]:
        """Comme push(), mais ne retourne que les echantillons des frames voisees."""
        return [f.samples for f in self.push(samples) if f.voiced]

    def _emit(self) -> Frame:
        frame = self.buffer.copy()
        energy = frame_energy(frame)
        if self.on_energy is not None:
            self.on_energy(energy)
        emitted = Frame(
            index=self.frames_emitted,
            samples=frame,
            energy=energy,
            voiced=energy >= self.vad_threshold,
        )
        self.frames_emitted += 1
        return emitted


def iter_voiced_frames(blocks: Iterable[np.ndarray], segmenter: FrameSegmenter) -> Iterator[np.ndarray]:
    """
    Sequence paresseuse des frames voisees d'un flux de blocs.

    Infinie si la source l'est; non redemarrable (le segmenteur garde son
    etat entre deux blocs).
    """
    for block in blocks:
        yield from segmenter.voiced(block)


def iter_blocks(samples: np.ndarray, block_size: int) -> Iterator[np.ndarray]:
    # Decoupe un signal complet en blocs, comme le ferait un callback micro.
    for start in range(0, samples.size, max(int(block_size), 1)):
        yield samples[start:start + block_size]

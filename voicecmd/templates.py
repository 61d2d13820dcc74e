"""
Templates acoustiques par commande: construction, fusion, seuil, stockage.

Pourquoi: resumer quelques prononciations d'une commande en un objet
compact et durable (centroide normalise + fenetre autour de l'attaque +
delta), puis choisir un rayon d'acceptation a partir des deux commandes.
Comment: detection d'onset par saut d'energie, moyenne normalisee pour le
centroide, fusion multi-enregistrements, seuil automatique borne; le tout
se serialise en JSON (voir TemplatePair.to_dict).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional, Sequence

import numpy as np

from voicecmd.errors import ConfigurationError, InsufficientDataError, MissingTemplateError
from voicecmd.features import normalize

logger = logging.getLogger(__name__)

# Nombre minimal de frames voisees pour construire un template.
MIN_TEMPLATE_FRAMES = 5
# Fenetre retenue autour de l'onset: onset-1 .. onset+3.
WINDOW_BEFORE_ONSET = 1
WINDOW_AFTER_ONSET = 3
ENERGY_PROFILE_LEN = 3
DEFAULT_DIMENSION = 6
DEFAULT_THRESHOLD = 2.0
THRESHOLD_FLOOR = 0.05


class Command(str, Enum):
    """Les deux commandes reconnues."""

    JUMP = "jump"
    TURN = "turn"

    @property
    def label(self) -> str:
        return self.value.upper()


def coefficient_energy(vector: np.ndarray) -> float:
    # Energie d'un vecteur de coefficients: somme des valeurs absolues.
    return float(np.sum(np.abs(vector)))


def euclidean(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.linalg.norm(np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)))


@dataclass
class Template:
    """
    Template d'une commande.

    frames: jusqu'a 5 vecteurs normalises autour de l'attaque.
    centroid: moyenne normalisee de toutes les frames voisees (cible principale).
    delta_coefficients: derivee entre les deux premieres frames retenues.
    energy_profile: energies brutes des 3 premieres frames retenues (diagnostic).
    auto_threshold: rayon d'acceptation autour du centroide.
    """

    frames: list[np.ndarray] = field(default_factory=list)
    centroid: np.ndarray = field(default_factory=lambda: np.zeros(DEFAULT_DIMENSION))
    delta_coefficients: np.ndarray = field(default_factory=lambda: np.zeros(DEFAULT_DIMENSION))
    energy_profile: np.ndarray = field(default_factory=lambda: np.zeros(ENERGY_PROFILE_LEN))
    auto_threshold: float = DEFAULT_THRESHOLD

    @property
    def is_complete(self) -> bool:
        return len(self.frames) >= 2

    @property
    def dimension(self) -> int:
        return int(self.centroid.size)

    @property
    def total_energy(self) -> float:
        return float(np.sum(self.energy_profile))

    def with_threshold(self, threshold: float) -> "Template":
        return replace(self, auto_threshold=float(threshold))

    @classmethod
    def empty(cls, dimension: int = DEFAULT_DIMENSION) -> "Template":
        return cls(centroid=np.zeros(dimension), delta_coefficients=np.zeros(dimension))

    def to_dict(self) -> dict:
        # Cles conservees telles quelles: le format est partage avec l'hote.
        return {
            "windows": [[float(x) for x in f] for f in self.frames],
            "energyProfile": [float(x) for x in self.energy_profile],
            "deltaCoefficients": [float(x) for x in self.delta_coefficients],
            "centroid": [float(x) for x in self.centroid],
            "autoThreshold": float(self.auto_threshold),
        }

    @classmethod
    def from_dict(cls, data: Mapping, default_threshold: float = DEFAULT_THRESHOLD) -> "Template":
        """
        Reconstruit un template depuis son blob JSON.

        Pourquoi: le recognizer consomme l'artefact de calibration tel quel.
        Comment: conversion float64 + verification des dimensions; sans seuil
        propre, le template prend `default_threshold` (le seuil commun).
        """
        centroid = np.asarray(data.get("centroid", []), dtype=np.float64).reshape(-1)
        dimension = centroid.size or DEFAULT_DIMENSION
        if centroid.size == 0:
            centroid = np.zeros(dimension)
        delta = np.asarray(data.get("deltaCoefficients", []), dtype=np.float64).reshape(-1)
        if delta.size == 0:
            delta = np.zeros(dimension)
        frames = [np.asarray(f, dtype=np.float64).reshape(-1) for f in data.get("windows", [])]

        if delta.size != dimension or any(f.size != dimension for f in frames):
            raise ConfigurationError(
                f"Template incoherent: centroide D={dimension}, delta D={delta.size}, "
                f"frames D={[f.size for f in frames]}"
            )

        profile = np.zeros(ENERGY_PROFILE_LEN)
        stored = np.asarray(data.get("energyProfile", []), dtype=np.float64).reshape(-1)[:ENERGY_PROFILE_LEN]
        profile[:stored.size] = stored

        return cls(
            frames=frames,
            centroid=centroid,
            delta_coefficients=delta,
            energy_profile=profile,
            auto_threshold=float(data.get("autoThreshold", default_threshold)),
        )


def find_onset(vectors: np.ndarray) -> int:
    """
    Index de la plus forte hausse d'energie (l'attaque), borne a [1, N-2].

    Pourquoi: l'attaque est la partie la plus discriminante d'un mot court.
    Comment: energie par frame, differences successives, premier maximum
    strictement positif; 0 si l'energie ne monte jamais, puis bornage pour
    que les voisins existent.
    """
    energies = np.array([coefficient_energy(v) for v in vectors], dtype=np.float64)
    onset = 0
    if energies.size > 1:
        rises = np.diff(energies)
        if float(rises.max()) > 0.0:
            onset = int(np.argmax(rises)) + 1
    return int(np.clip(onset, 1, max(len(vectors) - 2, 1)))


def select_discriminative_frames(n_frames: int, onset: int) -> list[int]:
    # Fenetre contigue [onset-1, onset+3], coupee aux indices valides.
    start = onset - WINDOW_BEFORE_ONSET
    stop = onset + WINDOW_AFTER_ONSET + 1
    return [i for i in range(start, stop) if 0 <= i < n_frames]


def build_template(vectors: Sequence[np.ndarray], dimension: int = DEFAULT_DIMENSION) -> Template:
    """
    Construit le template d'un enregistrement (une prononciation).

    Pourquoi: passer d'une suite de vecteurs MFCC a une cible compacte.
    Comment: onset -> fenetre de 5 frames normalisees; centroide sur toutes
    les frames; delta entre les deux premieres frames retenues (domaine
    normalise); energies des 3 premieres. Moins de 5 frames -> template
    incomplet, a l'appelant de redemander un enregistrement.
    """
    if len(vectors) < MIN_TEMPLATE_FRAMES:
        return Template.empty(dimension)

    data = np.vstack([np.asarray(v, dtype=np.float64).reshape(-1) for v in vectors])
    if data.shape[1] != dimension:
        raise ConfigurationError(f"Vecteurs de dimension {data.shape[1]}, template attendu en {dimension}")
    onset = find_onset(data)
    selected = select_discriminative_frames(data.shape[0], onset)

    # Centroide sur tout l'enregistrement: estimation stable de la forme spectrale.
    centroid = normalize(data.mean(axis=0))
    frames = [normalize(data[i]) for i in selected]

    delta = np.zeros(data.shape[1])
    if len(frames) >= 2:
        delta = frames[1] - frames[0]

    profile = np.zeros(ENERGY_PROFILE_LEN)
    for slot, idx in enumerate(selected[:ENERGY_PROFILE_LEN]):
        profile[slot] = coefficient_energy(data[idx])

    return Template(
        frames=frames,
        centroid=centroid,
        delta_coefficients=delta,
        energy_profile=profile,
    )


def merge_templates(templates: Sequence[Template]) -> Optional[Template]:
    """
    Fusionne plusieurs prononciations d'une meme commande.

    Pourquoi: une seule prise est trop sensible aux variations de diction.
    Comment: moyenne des centroides (renormalisee) et des deltas; les frames
    et le profil d'energie viennent de la prise la plus energique, car
    moyenner des fenetres brutes brouillerait l'attaque.
    """
    if not templates:
        return None
    if len(templates) == 1:
        return templates[0]

    centroid = normalize(np.mean([t.centroid for t in templates], axis=0))
    delta = np.mean([t.delta_coefficients for t in templates], axis=0)

    best = 0
    best_energy = 0.0
    for i, template in enumerate(templates):
        if template.total_energy > best_energy:
            best_energy = template.total_energy
            best = i

    source = templates[best]
    return Template(
        frames=[f.copy() for f in source.frames],
        centroid=centroid,
        delta_coefficients=delta,
        energy_profile=source.energy_profile.copy(),
        auto_threshold=source.auto_threshold,
    )


def compute_spread(templates: Sequence[Template], merged_centroid: np.ndarray) -> float:
    """Distance moyenne entre chaque centroide et le centroide fusionne."""
    if len(templates) <= 1:
        return 0.0
    return float(np.mean([euclidean(t.centroid, merged_centroid) for t in templates]))


def compute_auto_threshold(
    centroid_a: np.ndarray,
    centroid_b: np.ndarray,
    max_spread: float,
    floor: float = THRESHOLD_FLOOR,
) -> float:
    """
    Rayon d'acceptation commun aux deux commandes.

    Pourquoi: aller a peu pres a mi-chemin de l'autre commande, mais se
    resserrer si les prononciations d'une commande varient beaucoup, sans
    jamais tomber a zero.
    Comment: min(I/2, I - 1.5 spread), puis max avec 1.2 spread et le plancher.
    """
    inter = euclidean(centroid_a, centroid_b)
    threshold = min(inter * 0.5, inter - 1.5 * max_spread)
    return float(max(threshold, 1.2 * max_spread, floor))


def rate_separation(inter_distance: float, max_spread: float) -> str:
    if inter_distance > max_spread * 3.0:
        return "excellent"
    if inter_distance > max_spread * 2.0:
        return "good"
    return "low"


@dataclass
class TemplatePair:
    """
    Artefact de calibration: un template par commande + le seuil commun.

    Un cote absent (None) ou incomplet ne peut jamais gagner au matching.
    """

    jump: Optional[Template] = None
    turn: Optional[Template] = None
    auto_threshold: float = DEFAULT_THRESHOLD

    def get(self, command: Command) -> Optional[Template]:
        return self.jump if command is Command.JUMP else self.turn

    @property
    def is_complete(self) -> bool:
        return all(t is not None and t.is_complete for t in (self.jump, self.turn))

    def available(self) -> list[Command]:
        commands = []
        for command in Command:
            template = self.get(command)
            if template is not None and template.is_complete:
                commands.append(command)
        return commands

    def to_dict(self) -> dict:
        return {
            "jump": self.jump.to_dict() if self.jump is not None else None,
            "turn": self.turn.to_dict() if self.turn is not None else None,
            "autoThreshold": float(self.auto_threshold),
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "TemplatePair":
        jump = data.get("jump")
        turn = data.get("turn")
        shared = float(data.get("autoThreshold", DEFAULT_THRESHOLD))
        return cls(
            jump=Template.from_dict(jump, shared) if jump is not None else None,
            turn=Template.from_dict(turn, shared) if turn is not None else None,
            auto_threshold=shared,
        )


@dataclass
class CalibrationReport:
    """Resume chiffre d'une calibration (distance, dispersion, seuil)."""

    inter_distance: float
    jump_spread: float
    turn_spread: float
    threshold: float
    quality: str
    jump_recordings: int
    turn_recordings: int

    @property
    def max_spread(self) -> float:
        return max(self.jump_spread, self.turn_spread)

    def to_dict(self) -> dict:
        return {
            "counts": {"jump": self.jump_recordings, "turn": self.turn_recordings},
            "metrics": {
                "inter_distance": self.inter_distance,
                "jump_spread": self.jump_spread,
                "turn_spread": self.turn_spread,
                "max_spread": self.max_spread,
                "threshold": self.threshold,
            },
            "quality": self.quality,
        }


def calibrate_pair(
    jump_templates: Sequence[Template],
    turn_templates: Sequence[Template],
    floor: float = THRESHOLD_FLOOR,
) -> tuple[TemplatePair, CalibrationReport]:
    """
    Fusionne les prises des deux commandes et calcule le seuil commun.

    Pourquoi: produire en une etape l'artefact persiste et son rapport.
    Comment: fusion par commande, dispersions, seuil auto recopie dans
    chaque template.
    """
    jump = merge_templates(jump_templates)
    turn = merge_templates(turn_templates)
    for command, merged in ((Command.JUMP, jump), (Command.TURN, turn)):
        if merged is None or not merged.is_complete:
            raise InsufficientDataError(f"Aucun enregistrement exploitable pour {command.label}")

    if jump.dimension != turn.dimension:
        raise ConfigurationError(f"Dimensions differentes: jump={jump.dimension}, turn={turn.dimension}")

    inter = euclidean(jump.centroid, turn.centroid)
    jump_spread = compute_spread(jump_templates, jump.centroid)
    turn_spread = compute_spread(turn_templates, turn.centroid)
    max_spread = max(jump_spread, turn_spread)
    threshold = compute_auto_threshold(jump.centroid, turn.centroid, max_spread, floor=floor)

    pair = TemplatePair(
        jump=jump.with_threshold(threshold),
        turn=turn.with_threshold(threshold),
        auto_threshold=threshold,
    )
    report = CalibrationReport(
        inter_distance=inter,
        jump_spread=jump_spread,
        turn_spread=turn_spread,
        threshold=threshold,
        quality=rate_separation(inter, max_spread),
        jump_recordings=len(jump_templates),
        turn_recordings=len(turn_templates),
    )
    logger.info(
        "Calibration: inter=%.3f spread=%.3f seuil=%.3f qualite=%s",
        inter,
        max_spread,
        threshold,
        report.quality,
    )
    return pair, report


def save_templates(pair: TemplatePair, path: Path) -> None:
    """
    Ecrit l'artefact de calibration en JSON.

    Pourquoi: les floats Python sont ecrits avec leur repr la plus courte
    qui se relit a l'identique, donc save -> load -> save est stable.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(pair.to_dict(), indent=2), encoding="utf-8")


def load_templates(path: Path) -> TemplatePair:
    """
    Charge l'artefact de calibration.

    Fichier absent -> MissingTemplateError. Un cote absent ou incomplet est
    charge quand meme (mode degrade) et signale dans les logs.
    """
    if not path.exists():
        raise MissingTemplateError(f"Aucune calibration trouvee: {path}")
    pair = TemplatePair.from_dict(json.loads(path.read_text(encoding="utf-8")))
    for command in Command:
        template = pair.get(command)
        if template is None or not template.is_complete:
            logger.warning("Template %s absent ou incomplet: commande desactivee", command.label)
    logger.info(
        "Templates charges | jump=%d frames, turn=%d frames, seuil=%.3f",
        len(pair.jump.frames) if pair.jump else 0,
        len(pair.turn.frames) if pair.turn else 0,
        pair.auto_threshold,
    )
    return pair


def save_report(report: dict, path: Path) -> None:
    """
    Ecrit un rapport JSON lisible sur disque.

    Pourquoi: garder une trace des calibrations pour les comparer.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report, indent=2, ensure_ascii=False), encoding="utf-8")

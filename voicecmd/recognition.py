"""
Reconnaissance temps reel JUMP / TURN par matching competitif.

Pourquoi: decider, frame par frame, si une commande doit se declencher,
avec au plus une commande en cours d'accumulation et un cooldown apres
chaque declenchement.
Comment: distance au centroide (melangee a une distance de delta), le plus
proche gagne seul, marge sur le perdant, seuil d'acceptation, puis N frames
consecutives avant de declencher (hysteresis).
"""

from __future__ import annotations

import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional, Union

import numpy as np

from voicecmd.config import RecognizerConfig
from voicecmd.errors import ConfigurationError
from voicecmd.features import normalize
from voicecmd.templates import Command, Template, TemplatePair, euclidean

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
# Nombre de latences conservees pour la moyenne glissante.
LATENCY_HISTORY = 100


@dataclass(frozen=True)
class Idle:
    """Aucune serie de matchs en cours."""


@dataclass(frozen=True)
class Accumulating:
    """Une seule commande accumule des frames qualifiantes consecutives."""

    command: Command
    count: int
    first_match_time: float
    first_match_frame: int


RecognitionState = Union[Idle, Accumulating]
IDLE = Idle()


@dataclass(frozen=True)
class FireEvent:
    """Declenchement d'une commande."""

    command: Command
    first_match_time: float
    fired_at: float
    frame_count: int
    distance: float
    first_frame: int
    fire_frame: int

    @property
    def latency(self) -> float:
        return self.fired_at - self.first_match_time

    def __str__(self) -> str:
        return (
            f"{self.command.label} (dist={self.distance:.3f}, "
            f"{self.frame_count} frames, latence={self.latency * 1000.0:.1f} ms)"
        )


@dataclass(frozen=True)
class FrameScore:
    """Detail du dernier calcul, pour le diagnostic."""

    jump_distance: float
    turn_distance: float
    winner: Command
    margin_ok: bool
    matched: bool


class CompetitiveRecognizer:
    """
    Machine a etats Idle -> Accumulating(commande) -> declenchement -> cooldown.

    Pourquoi: un seul etat d'accumulation rend l'exclusion mutuelle des deux
    commandes structurelle; le perdant d'une frame perd toujours sa serie.
    Comment: process() est appele pour chaque frame voisee; l'horloge est
    injectable (monotone par defaut) pour rejouer des fichiers ou tester.
    """

    def __init__(
        self,
        templates: TemplatePair,
        config: RecognizerConfig | None = None,
        clock: Clock = time.monotonic,
        on_fire: Optional[Callable[[FireEvent], None]] = None,
    ):
        self.templates = templates
        self.config = config or RecognizerConfig()
        self.clock = clock
        self.on_fire = on_fire
        self.dimension = self._template_dimension(templates)

        self.state: RecognitionState = IDLE
        self.unlock_time = -math.inf
        self.previous: Optional[np.ndarray] = None
        self.frame_count = 0
        self.stopped = False
        self.last_score: Optional[FrameScore] = None
        self.latencies: deque[float] = deque(maxlen=LATENCY_HISTORY)
        self.start_time = self.clock()

        if not templates.available():
            logger.warning("Aucun template complet: aucune commande ne pourra se declencher")

    @staticmethod
    def _template_dimension(templates: TemplatePair) -> Optional[int]:
        dims = {t.dimension for t in (templates.jump, templates.turn) if t is not None and t.is_complete}
        if len(dims) > 1:
            raise ConfigurationError(f"Templates de dimensions differentes: {sorted(dims)}")
        return dims.pop() if dims else None

    def acceptance_radius(self, template: Template) -> float:
        # Seuil auto du template, sinon le seuil de repli de la config.
        if template.auto_threshold > 0.0:
            return float(template.auto_threshold)
        return float(self.config.frame_threshold)

    def distance(self, template: Optional[Template], vector: np.ndarray, delta: Optional[np.ndarray]) -> float:
        """
        Distance d'une frame normalisee a un template.

        Template absent ou incomplet -> +inf: la commande ne peut pas gagner.
        """
        if template is None or not template.is_complete:
            return math.inf
        dist = euclidean(vector, template.centroid)
        if self.config.use_delta and delta is not None:
            delta_dist = euclidean(delta, template.delta_coefficients)
            weight = self.config.delta_weight
            dist = dist * (1.0 - weight) + delta_dist * weight
        return dist

    def process(self, vector: np.ndarray, now: Optional[float] = None) -> Optional[FireEvent]:
        """
        Traite une frame voisee; retourne l'evenement si une commande se declenche.

        Pendant le cooldown la frame est ignoree sans toucher a l'etat.
        """
        if self.stopped:
            return None
        now = self.clock() if now is None else float(now)
        self.frame_count += 1

        if now < self.unlock_time:
            return None

        v = normalize(vector)
        if self.dimension is not None and v.size != self.dimension:
            raise ConfigurationError(f"Vecteur de dimension {v.size}, templates en {self.dimension}")

        delta = None
        if self.config.use_delta and self.previous is not None:
            delta = v - self.previous

        jump_dist = self.distance(self.templates.jump, v, delta)
        turn_dist = self.distance(self.templates.turn, v, delta)

        # Winner-take-all: egalite -> JUMP, mais la marge stricte rejettera.
        if jump_dist <= turn_dist:
            winner, winner_dist, loser_dist = Command.JUMP, jump_dist, turn_dist
        else:
            winner, winner_dist, loser_dist = Command.TURN, turn_dist, jump_dist

        margin_ok = winner_dist < loser_dist * self.config.margin_factor
        template = self.templates.get(winner)
        matched = margin_ok and template is not None and winner_dist < self.acceptance_radius(template)
        self.last_score = FrameScore(jump_dist, turn_dist, winner, margin_ok, matched)

        event = None
        if matched:
            event = self._accumulate(winner, winner_dist, now)
        else:
            self.state = IDLE

        self.previous = v
        return event

    def _accumulate(self, command: Command, dist: float, now: float) -> Optional[FireEvent]:
        state = self.state
        if isinstance(state, Accumulating) and state.command is command:
            state = Accumulating(command, state.count + 1, state.first_match_time, state.first_match_frame)
        else:
            # Nouvelle serie: celle de l'autre commande est perdue.
            state = Accumulating(command, 1, now, self.frame_count)
            logger.debug("%s debut a %.3fs (dist=%.3f)", command.label, now, dist)

        if state.count >= self.config.min_frames_required:
            return self._fire(state, dist, now)
        self.state = state
        return None

    def _fire(self, state: Accumulating, dist: float, now: float) -> FireEvent:
        event = FireEvent(
            command=state.command,
            first_match_time=state.first_match_time,
            fired_at=now,
            frame_count=state.count,
            distance=dist,
            first_frame=state.first_match_frame,
            fire_frame=self.frame_count,
        )
        self.state = IDLE
        self.unlock_time = now + self.config.cooldown_s
        self.latencies.append(event.latency)
        logger.info("Declenchement %s", event)
        if self.on_fire is not None:
            self.on_fire(event)
        return event

    def stop(self) -> None:
        """
        Annule la reconnaissance: la serie en cours est abandonnee et plus
        aucun evenement n'est emis jusqu'au prochain reset().
        """
        self.stopped = True
        self.state = IDLE

    def reset(self) -> None:
        self.state = IDLE
        self.previous = None
        self.unlock_time = -math.inf
        self.stopped = False

    def average_latency(self) -> float:
        if not self.latencies:
            return 0.0
        return float(sum(self.latencies) / len(self.latencies))

    def uptime(self) -> float:
        return self.clock() - self.start_time

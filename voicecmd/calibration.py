"""
Session de calibration guidee (sans interface graphique).

Pourquoi: enchainer les prises JUMP puis TURN, decouper chaque prise par
silence, rejeter les prises inexploitables et produire l'artefact final.
Comment: petite machine a etats pilotee par les vecteurs voises (feed) et
par l'horloge (tick); l'affichage reste a la charge de l'appelant.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

import numpy as np

from voicecmd.config import CalibrationConfig
from voicecmd.errors import InsufficientDataError
from voicecmd.templates import (
    CalibrationReport,
    Command,
    Template,
    TemplatePair,
    build_template,
    calibrate_pair,
)

logger = logging.getLogger(__name__)

# Ordre de calibration des commandes.
COMMAND_ORDER = (Command.JUMP, Command.TURN)


class Phase(str, Enum):
    START = "start"
    LISTENING = "listening"
    RECORDING = "recording"
    SUCCESS = "success"
    FAIL = "fail"
    READY = "ready"
    COMPLETE = "complete"


@dataclass(frozen=True)
class RecordingResult:
    """Prise acceptee: commande, numero de prise, frames et duree."""

    command: Command
    repetition: int
    frames: int
    duration_s: float
    template: Template


def validate_recording(
    vectors: Sequence[np.ndarray],
    duration_s: float,
    config: CalibrationConfig,
    dimension: int,
) -> Template:
    """
    Verifie une prise et construit son template.

    Leve InsufficientDataError si la prise est trop courte, trop longue, ou
    si le template obtenu est incomplet.
    """
    frames = len(vectors)
    if duration_s < config.min_duration_s:
        raise InsufficientDataError(
            f"Trop court ({duration_s * 1000.0:.0f} ms < {config.min_duration_s * 1000.0:.0f} ms)",
            frames=frames,
            duration_s=duration_s,
        )
    if duration_s > config.max_duration_s:
        raise InsufficientDataError(
            f"Trop long ({duration_s * 1000.0:.0f} ms > {config.max_duration_s * 1000.0:.0f} ms)",
            frames=frames,
            duration_s=duration_s,
        )
    if frames < config.min_frames:
        raise InsufficientDataError(
            f"Pas assez de frames voisees ({frames} < {config.min_frames})",
            frames=frames,
            duration_s=duration_s,
        )
    template = build_template(vectors, dimension=dimension)
    if not template.is_complete:
        raise InsufficientDataError("Template incomplet", frames=frames, duration_s=duration_s)
    return template


class CalibrationSession:
    """
    Enregistre `repetitions` prises par commande puis fusionne.

    Pourquoi: isoler la logique de calibration de la capture micro et de
    l'affichage, pour la rejouer a l'identique en test.
    Comment: LISTENING attend la premiere frame voisee, RECORDING accumule
    jusqu'a un silence (ou la duree max), puis SUCCESS/FAIL. advance() et
    retry() font progresser la session, finalize() produit les templates.
    """

    def __init__(self, config: CalibrationConfig | None = None, dimension: int = 6):
        self.config = config or CalibrationConfig()
        self.dimension = int(dimension)
        self.phase = Phase.START
        self.command_index = 0
        self.recording_index = 0
        self.recordings: dict[Command, list[Template]] = {c: [] for c in COMMAND_ORDER}
        self.buffer: list[np.ndarray] = []
        self.recording_start = 0.0
        self.last_frame_time = 0.0
        self.last_error: Optional[InsufficientDataError] = None
        self.last_result: Optional[RecordingResult] = None

    @property
    def current_command(self) -> Command:
        return COMMAND_ORDER[min(self.command_index, len(COMMAND_ORDER) - 1)]

    @property
    def total_step(self) -> int:
        return self.command_index * self.config.repetitions + self.recording_index

    @property
    def total_steps(self) -> int:
        return len(COMMAND_ORDER) * self.config.repetitions

    def begin(self) -> None:
        self.command_index = 0
        self.recording_index = 0
        for templates in self.recordings.values():
            templates.clear()
        self._listen()

    def _listen(self) -> None:
        self.buffer = []
        self.phase = Phase.LISTENING

    def feed(self, vector: np.ndarray, now: float) -> None:
        """
        Ajoute un vecteur voise a la prise courante.

        La premiere frame voisee en ecoute demarre l'enregistrement.
        """
        if self.phase is Phase.LISTENING:
            self.phase = Phase.RECORDING
            self.recording_start = now
            self.buffer = []
        elif self.phase is not Phase.RECORDING:
            return
        self.last_frame_time = now
        self.buffer.append(np.array(vector, dtype=np.float64, copy=True))

    def tick(self, now: float) -> Optional[Phase]:
        """
        Termine la prise sur silence ou depassement de duree.

        Retourne la nouvelle phase (SUCCESS ou FAIL) si la prise s'est
        terminee a ce tick, sinon None.
        """
        if self.phase is not Phase.RECORDING:
            return None
        too_long = now - self.recording_start > self.config.max_duration_s
        silent = now - self.last_frame_time > self.config.silence_timeout_s
        if not (too_long or silent):
            return None
        # Duree jusqu'a la fin de la prise, queue de silence comprise.
        return self.finish_recording(now - self.recording_start)

    def finish_recording(self, duration_s: float) -> Phase:
        try:
            self.submit(self.buffer, duration_s)
        except InsufficientDataError as exc:
            self.last_error = exc
            self.phase = Phase.FAIL
            logger.info("%s prise %d rejetee: %s", self.current_command.label, self.recording_index + 1, exc)
        return self.phase

    def submit(self, vectors: Sequence[np.ndarray], duration_s: float) -> RecordingResult:
        """
        Valide une prise complete pour l'etape courante.

        Pourquoi: permettre aussi une capture hors session (fichier, micro
        bloquant) sans passer par feed/tick.
        """
        command = self.current_command
        template = validate_recording(vectors, duration_s, self.config, self.dimension)
        self.recordings[command].append(template)
        self.last_error = None
        self.last_result = RecordingResult(
            command=command,
            repetition=self.recording_index + 1,
            frames=len(vectors),
            duration_s=float(duration_s),
            template=template,
        )
        self.phase = Phase.SUCCESS
        logger.debug(
            "%s prise %d: %d frames, %d retenues, %.0f ms",
            command.label,
            self.recording_index + 1,
            len(vectors),
            len(template.frames),
            duration_s * 1000.0,
        )
        return self.last_result

    def retry(self) -> None:
        # Meme etape, nouvelle prise.
        self._listen()

    def advance(self) -> None:
        """Passe a la prise suivante, puis a la commande suivante."""
        self.recording_index += 1
        if self.recording_index >= self.config.repetitions:
            self.command_index += 1
            self.recording_index = 0
            if self.command_index >= len(COMMAND_ORDER):
                self.phase = Phase.READY
                return
        self._listen()

    def redo_last(self) -> None:
        """
        Revient une etape en arriere et jette la prise correspondante.

        Pourquoi: l'utilisateur sait souvent qu'il a rate sa derniere prise.
        Comment: en SUCCESS (avant advance), la derniere prise est celle de
        l'etape courante: on la jette sans reculer.
        """
        if self.phase is Phase.SUCCESS:
            templates = self.recordings[self.current_command]
            if len(templates) > self.recording_index:
                del templates[self.recording_index]
            self._listen()
            return
        if self.recording_index > 0:
            self.recording_index -= 1
        elif self.command_index > 0:
            self.command_index -= 1
            self.recording_index = self.config.repetitions - 1
        else:
            self._listen()
            return
        templates = self.recordings[self.current_command]
        if len(templates) > self.recording_index:
            del templates[self.recording_index]
        self._listen()

    def finalize(self) -> tuple[TemplatePair, CalibrationReport]:
        """
        Fusionne les prises et calcule le seuil automatique.

        Leve InsufficientDataError si une commande n'a aucune prise valide.
        """
        pair, report = calibrate_pair(
            self.recordings[Command.JUMP],
            self.recordings[Command.TURN],
            floor=self.config.threshold_floor,
        )
        self.phase = Phase.COMPLETE
        return pair, report

"""
Capture micro: calibration interactive et clips WAV de test.

Pourquoi: piloter la session de calibration depuis un terminal, et garder
des enregistrements pour rejouer une calibration hors ligne.
Comment: flux sounddevice -> canal a une place -> front-end MFCC ->
CalibrationSession; les clips de test sont ecrits via soundfile.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

import soundfile as sf

from voicecmd.calibration import CalibrationSession, Phase
from voicecmd.config import VoiceConfig
from voicecmd.inference import BlockChannel, FeatureFrontEnd, open_input_stream
from voicecmd.recognition import Clock
from voicecmd.templates import CalibrationReport, Command, TemplatePair, save_report, save_templates

logger = logging.getLogger(__name__)

# Pause entre deux prises (le temps de relacher la voix).
PAUSE_AFTER_RECORDING_S = 0.8


def next_index(folder: Path, prefix: str) -> int:
    """
    Retourne l'index suivant pour eviter d'ecraser les enregistrements.

    Comment: on scanne les fichiers existants et on prend max+1.
    """
    existing = list(folder.glob(f"{prefix}_*.wav"))
    if not existing:
        return 1
    nums = [
        int(f.stem.split("_")[-1])
        for f in existing
        if f.stem.split("_")[-1].isdigit()
    ]
    return max(nums, default=0) + 1


def record_test_clip(
    folder: Path,
    command: Command,
    mic_index: Optional[int],
    samplerate: int,
    duration_s: float,
) -> Path:
    """
    Capture un clip micro et le sauve dans folder (ex: jump_004.wav).

    Pourquoi: constituer des enregistrements de reference pour replay.
    Comment: enregistrement bloquant sounddevice, puis ecriture WAV via soundfile.
    """
    import sounddevice as sd

    folder.mkdir(parents=True, exist_ok=True)
    idx = next_index(folder, command.value)
    filename = folder / f"{command.value}_{idx:03d}.wav"

    clip = sd.rec(
        int(duration_s * samplerate),
        samplerate=samplerate,
        channels=1,
        device=mic_index,
        dtype="int16",
        blocking=True,
    )
    sf.write(filename, clip, samplerate)
    return filename


def interactive_clip_session(
    folder: Path,
    mic_index: Optional[int],
    samplerate: int = 16000,
    duration_s: float = 1.0,
) -> None:
    """
    Petit shell interactif pour enregistrer des clips JUMP/TURN.

    Pourquoi: alterner rapidement entre commandes sans relancer le script.
    Comment: commandes j/t/q, Entree = enregistrer dans le mode courant.
    """
    print("Entrée : enregistre dans le mode courant")
    print("j + Entrée : mode JUMP")
    print("t + Entrée : mode TURN")
    print("q + Entrée : quitter\n")

    mode = Command.JUMP
    while True:
        cmd = input(f"[mode={mode.label}] > ").strip().lower()
        if cmd == "q":
            break
        if cmd == "j":
            mode = Command.JUMP
            print("→ Mode JUMP\n")
        elif cmd == "t":
            mode = Command.TURN
            print("→ Mode TURN\n")
        else:
            path = record_test_clip(folder, mode, mic_index, samplerate, duration_s)
            print(f"✓ Sauvegardé {path.name}\n")


def _announce(session: CalibrationSession) -> None:
    print(
        f"[{session.total_step + 1}/{session.total_steps}] Dites \"{session.current_command.label}\" "
        f"(prise {session.recording_index + 1}/{session.config.repetitions})",
        flush=True,
    )


def interactive_calibration_session(
    templates_path: Path,
    config: VoiceConfig | None = None,
    mic_index: Optional[int] = None,
    report_path: Optional[Path] = None,
    block_ms: float = 16.0,
    clock: Clock = time.monotonic,
) -> tuple[TemplatePair, CalibrationReport]:
    """
    Calibration complete au micro: prises JUMP puis TURN, fusion, sauvegarde.

    Pourquoi: produire l'artefact lu par le recognizer en une commande.
    Comment: la boucle lit les blocs, alimente la session avec les vecteurs
    voises, fait avancer la machine a etats et affiche les consignes. Une
    prise rejetee est simplement recommencee.
    """
    config = config or VoiceConfig()
    session = CalibrationSession(config.calibration, dimension=config.audio.n_coeffs)
    front_end = FeatureFrontEnd(config, clock=clock)
    channel = BlockChannel()
    block_size = max(int(round(config.audio.sample_rate * (block_ms / 1000.0))), 1)

    input(f"Calibration: {config.calibration.repetitions} prises par commande. Entrée pour commencer... ")
    session.begin()
    _announce(session)

    with open_input_stream(channel, mic_index, config.audio.sample_rate, block_size):
        while session.phase is not Phase.READY:
            item = channel.get(timeout=0.02)
            if item is not None:
                block, gap = item
                if gap:
                    front_end.reset()
                for stamp, vector in front_end.push(block, clock()):
                    session.feed(vector, stamp)

            phase = session.tick(clock())
            if phase is None:
                continue
            if phase is Phase.SUCCESS:
                result = session.last_result
                print(f"✓ {result.command.label}: {result.duration_s * 1000.0:.0f} ms, {result.frames} frames")
                time.sleep(PAUSE_AFTER_RECORDING_S)
                session.advance()
            else:
                print(f"✗ {session.last_error}, on recommence")
                time.sleep(PAUSE_AFTER_RECORDING_S)
                session.retry()

            # Ce qui a ete capte pendant la pause ne compte pas.
            channel.clear()
            front_end.reset()
            if session.phase is Phase.LISTENING:
                _announce(session)

    pair, report = session.finalize()
    save_templates(pair, templates_path)
    if report_path is not None:
        save_report(report.to_dict(), report_path)
    logger.info("Calibration sauvegardee dans %s", templates_path)
    return pair, report

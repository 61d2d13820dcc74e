"""
CLI de reconnaissance JUMP / TURN en temps reel.

Pourquoi: tester une calibration directement au micro.
Comment: charger les templates, puis lancer la boucle audio bloquante.
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from pathlib import Path

from voicecmd.cli.common import add_common_arguments, build_config, init_logging
from voicecmd.config import VoiceConfig
from voicecmd.errors import MissingTemplateError
from voicecmd.inference import run_realtime_detection
from voicecmd.templates import TemplatePair, load_templates

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """
    Construit le parser d'arguments.

    Pourquoi: regler micro, marge, cooldown sans toucher a la config.
    """
    parser = argparse.ArgumentParser(description="Reconnaissance JUMP / TURN en temps réel.")
    add_common_arguments(parser)
    parser.add_argument("--mic", type=int, default=None, help="Index du micro (voir detect_mic.py)")
    parser.add_argument("--block_ms", type=float, default=16.0, help="Taille de bloc micro (ms)")
    parser.add_argument("--cooldown_s", type=float, default=None, help="Délai avant nouveau déclenchement")
    parser.add_argument("--margin", type=float, default=None, help="Facteur de marge gagnant/perdant")
    parser.add_argument("--consecutive", type=int, default=None, help="Frames consécutives requises")
    parser.add_argument("--no-delta", action="store_true", help="Désactive les features delta")
    parser.add_argument(
        "--allow-missing",
        action="store_true",
        help="Démarrer même sans calibration (aucune commande ne se déclenchera)",
    )
    return parser


def apply_recognizer_overrides(config: VoiceConfig, args: argparse.Namespace) -> VoiceConfig:
    overrides = {}
    if args.cooldown_s is not None:
        overrides["cooldown_s"] = float(args.cooldown_s)
    if args.margin is not None:
        overrides["margin_factor"] = float(args.margin)
    if args.consecutive is not None:
        overrides["min_frames_required"] = int(args.consecutive)
    if args.no_delta:
        overrides["use_delta"] = False
    if not overrides:
        return config
    return replace(config, recognizer=replace(config.recognizer, **overrides))


def load_or_degrade(path: Path, allow_missing: bool) -> TemplatePair:
    """
    Charge les templates; sans fichier, soit on sort, soit on tourne a vide.

    Pourquoi: l'absence de calibration n'est pas fatale pour le recognizer,
    mais elle l'est pour un utilisateur qui ne l'a pas demande.
    """
    try:
        return load_templates(path)
    except MissingTemplateError as exc:
        if not allow_missing:
            raise SystemExit(f"{exc}. Lancez d'abord la calibration.")
        logger.warning("%s: démarrage sans template", exc)
        return TemplatePair()


def main() -> None:
    args = build_parser().parse_args()
    init_logging(args)
    config = apply_recognizer_overrides(build_config(args), args)
    templates = load_or_degrade(Path(args.templates), args.allow_missing)

    pipeline = run_realtime_detection(
        templates=templates,
        config=config,
        mic_index=args.mic,
        block_ms=args.block_ms,
    )
    recognizer = pipeline.recognizer
    print(
        f"Arrêt: {recognizer.frame_count} frames voisées, {len(recognizer.latencies)} déclenchement(s) récents, "
        f"latence moyenne {recognizer.average_latency() * 1000.0:.1f} ms"
    )


if __name__ == "__main__":
    main()

"""
CLI de calibration: enregistre JUMP et TURN puis sauvegarde les templates.

Pourquoi: produire l'artefact lu par le recognizer en une commande.
Comment: parse d'arguments puis appel a la session interactive.
"""

from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path

from voicecmd.cli.common import add_common_arguments, build_config, init_logging
from voicecmd.config import VoiceConfig
from voicecmd.recording import interactive_calibration_session
from voicecmd.templates import CalibrationReport


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Calibration des commandes JUMP / TURN.")
    add_common_arguments(parser)
    parser.add_argument("--mic", type=int, default=None, help="Index du micro (voir detect_mic.py)")
    parser.add_argument("--repetitions", type=int, default=None, help="Nombre de prises par commande")
    parser.add_argument("--report", default="voice_calibration_report.json", help="Rapport JSON de calibration")
    return parser


def apply_repetitions(config: VoiceConfig, repetitions: int | None) -> VoiceConfig:
    if repetitions is None:
        return config
    return replace(config, calibration=replace(config.calibration, repetitions=int(repetitions)))


def print_calibration_summary(report: CalibrationReport, templates_path: Path, report_path: Path) -> None:
    """
    Affiche un resume lisible de la calibration.

    Pourquoi: feedback immediat; une qualite "low" invite a choisir des
    prononciations plus distinctes.
    """
    print("Calibration terminée.")
    print(f"- Templates : {templates_path}")
    print(f"- Rapport : {report_path}")
    print(f"- Distance entre commandes : {report.inter_distance:.3f}")
    print(f"- Dispersion : {report.max_spread:.3f}")
    print(f"- Seuil : {report.threshold:.3f}")
    print(f"- Qualité : {report.quality}")


def main() -> None:
    args = build_parser().parse_args()
    init_logging(args)
    config = apply_repetitions(build_config(args), args.repetitions)

    templates_path = Path(args.templates)
    report_path = Path(args.report)
    try:
        _, report = interactive_calibration_session(
            templates_path=templates_path,
            config=config,
            mic_index=args.mic,
            report_path=report_path,
        )
    except KeyboardInterrupt:
        raise SystemExit("Calibration interrompue.")

    print_calibration_summary(report, templates_path, report_path)


if __name__ == "__main__":
    main()

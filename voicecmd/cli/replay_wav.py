"""
CLI de rejeu hors ligne: passe des WAV dans le pipeline et liste les commandes.

Pourquoi: mesurer une calibration sur des enregistrements reproductibles.
Comment: un fichier ou un dossier de WAV, horloge = position dans le flux.
"""

from __future__ import annotations

import argparse
from pathlib import Path

from voicecmd import audio
from voicecmd.cli.common import add_common_arguments, build_config, init_logging
from voicecmd.inference import replay_file
from voicecmd.templates import load_templates


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Rejeu de fichiers WAV dans le recognizer.")
    add_common_arguments(parser)
    parser.add_argument("inputs", nargs="+", help="Fichiers WAV ou dossiers de WAV")
    return parser


def resolve_inputs(inputs: list[str]) -> list[Path]:
    """Developpe les dossiers en liste triee de WAV."""
    files: list[Path] = []
    for item in inputs:
        path = Path(item)
        if path.is_dir():
            files.extend(audio.list_wav_files(path))
        else:
            files.append(path)
    return files


def main() -> None:
    args = build_parser().parse_args()
    init_logging(args)
    config = build_config(args)
    templates = load_templates(Path(args.templates))

    files = resolve_inputs(args.inputs)
    if not files:
        raise SystemExit("Aucun fichier WAV à rejouer.")

    for path in files:
        events = replay_file(path, templates, config)
        labels = ", ".join(f"{e.command.label}@{e.fired_at:.3f}s" for e in events) or "-"
        print(f"{path.name}: {labels}")


if __name__ == "__main__":
    main()

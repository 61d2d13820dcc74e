"""
CLI d'enregistrement de clips de test JUMP / TURN.

Pourquoi: constituer des WAV de reference pour replay_wav.py.
Comment: parse d'arguments puis appel a la session interactive.
"""

from __future__ import annotations

import argparse
from pathlib import Path

from voicecmd.recording import interactive_clip_session


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Enregistrer des clips de test JUMP / TURN.")
    parser.add_argument("--mic", type=int, default=None, help="Index du micro (voir detect_mic.py)")
    parser.add_argument("--samplerate", type=int, default=16000, help="Fréquence d'échantillonnage du micro")
    parser.add_argument("--duration", type=float, default=1.0, help="Durée d'un clip (secondes)")
    parser.add_argument("--out-dir", type=str, default="voice_clips", help="Dossier des clips")
    return parser


def main() -> None:
    args = build_parser().parse_args()
    interactive_clip_session(
        folder=Path(args.out_dir),
        mic_index=args.mic,
        samplerate=args.samplerate,
        duration_s=args.duration,
    )


if __name__ == "__main__":
    main()

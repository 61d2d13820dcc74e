"""
Options partagees par les CLI (config, templates, logging).

Pourquoi: chaque CLI charge la meme configuration de la meme facon.
Comment: un fichier JSON optionnel, puis quelques surcharges en ligne de commande.
"""

from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path

from voicecmd.config import VoiceConfig
from voicecmd.logging_setup import setup_logging

DEFAULT_TEMPLATES = "voice_templates.json"


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", default=None, help="Fichier de configuration JSON (optionnel)")
    parser.add_argument("--templates", default=DEFAULT_TEMPLATES, help="Fichier des templates calibrés")
    parser.add_argument("--vad", type=float, default=None, help="Seuil d'énergie VAD (somme des carrés)")
    parser.add_argument("--log-level", default=None, help="Niveau de log (DEBUG, INFO, ...)")


def build_config(args: argparse.Namespace) -> VoiceConfig:
    """
    Charge la config puis applique les surcharges CLI.

    Pourquoi: regler le seuil VAD sans editer de fichier.
    Comment: dataclasses.replace, la validation se refait a la construction.
    """
    config = VoiceConfig.load(Path(args.config)) if args.config else VoiceConfig()
    if args.vad is not None:
        config = replace(config, audio=replace(config.audio, vad_threshold=float(args.vad)))
    return config


def init_logging(args: argparse.Namespace) -> None:
    setup_logging(args.log_level)

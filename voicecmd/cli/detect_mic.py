"""
Liste les micros et verifie qu'ils acceptent la frequence du pipeline.

Pourquoi: le front-end MFCC est construit pour une seule frequence
(16 kHz par defaut); un micro qui la refuse ferait echouer la calibration.
Comment: sounddevice.query_devices + check_input_settings par device.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass

import sounddevice as sd

from voicecmd.config import AudioConfig


@dataclass(frozen=True)
class InputDevice:
    index: int
    name: str
    channels: int
    default_rate: float
    supports_rate: bool
    is_default: bool


def supports_sample_rate(index: int, sample_rate: int) -> bool:
    try:
        sd.check_input_settings(device=index, channels=1, samplerate=sample_rate)
    except (sd.PortAudioError, ValueError):
        return False
    return True


def list_input_devices(sample_rate: int) -> list[InputDevice]:
    """
    Retourne les devices ayant au moins un canal d'entree.

    Pourquoi: separer la collecte (API sounddevice) de l'affichage CLI.
    """
    default_input = sd.default.device[0]
    devices: list[InputDevice] = []
    for index, dev in enumerate(sd.query_devices()):
        if dev["max_input_channels"] <= 0:
            continue
        devices.append(
            InputDevice(
                index=index,
                name=dev.get("name", "unknown"),
                channels=dev.get("max_input_channels", 0),
                default_rate=float(dev.get("default_samplerate", 0.0)),
                supports_rate=supports_sample_rate(index, sample_rate),
                is_default=index == default_input,
            )
        )
    return devices


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Liste les micros disponibles.")
    parser.add_argument(
        "--samplerate",
        type=int,
        default=AudioConfig().sample_rate,
        help="Fréquence à vérifier (celle du pipeline)",
    )
    return parser


def main() -> None:
    args = build_parser().parse_args()
    for dev in list_input_devices(args.samplerate):
        marker = "*" if dev.is_default else " "
        status = "ok" if dev.supports_rate else f"{args.samplerate} Hz refusé"
        print(f"{marker}{dev.index}: {dev.name} (inputs={dev.channels}, {dev.default_rate:.0f} Hz, {status})")


if __name__ == "__main__":
    main()

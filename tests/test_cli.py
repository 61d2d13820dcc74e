"""
Tests des helpers CLI (sans micro).
"""

import argparse

import pytest

from voicecmd.cli.calibrate import apply_repetitions
from voicecmd.cli.common import build_config
from voicecmd.cli.replay_wav import resolve_inputs
from voicecmd.cli.run_recognizer import apply_recognizer_overrides, build_parser, load_or_degrade
from voicecmd.config import VoiceConfig
from voicecmd.errors import ConfigurationError


def test_build_config_with_overrides(tmp_path):
    path = tmp_path / "voicecmd.json"
    VoiceConfig.from_dict({"recognizer": {"cooldown_s": 0.4}}).save(path)
    args = argparse.Namespace(config=str(path), vad=0.01)

    config = build_config(args)
    assert config.recognizer.cooldown_s == 0.4
    assert config.audio.vad_threshold == 0.01


def test_recognizer_overrides_are_validated():
    args = build_parser().parse_args(["--margin", "0.5", "--consecutive", "3", "--no-delta"])
    config = apply_recognizer_overrides(VoiceConfig(), args)
    assert config.recognizer.margin_factor == 0.5
    assert config.recognizer.min_frames_required == 3
    assert config.recognizer.use_delta is False

    args = build_parser().parse_args(["--margin", "2.0"])
    with pytest.raises(ConfigurationError):
        apply_recognizer_overrides(VoiceConfig(), args)


def test_apply_repetitions():
    assert apply_repetitions(VoiceConfig(), None) == VoiceConfig()
    assert apply_repetitions(VoiceConfig(), 5).calibration.repetitions == 5


def test_missing_templates_exit_unless_allowed(tmp_path):
    path = tmp_path / "absent.json"
    with pytest.raises(SystemExit):
        load_or_degrade(path, allow_missing=False)
    pair = load_or_degrade(path, allow_missing=True)
    assert pair.available() == []


def test_resolve_inputs(tmp_path):
    (tmp_path / "b.wav").write_bytes(b"")
    (tmp_path / "a.wav").write_bytes(b"")
    single = tmp_path / "other.wav"
    assert [p.name for p in resolve_inputs([str(tmp_path), str(single)])] == ["a.wav", "b.wav", "other.wav"]

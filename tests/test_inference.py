"""
Tests du pipeline de streaming, du rejeu WAV et du canal micro.

Les tons de 500 Hz et 3000 Hz ont une periode qui divise le hop de 128
echantillons: toutes leurs frames sont identiques, ce qui rend les
distances exactes.
"""

import contextlib
import threading

import numpy as np
import pytest
import soundfile as sf

from voicecmd import inference
from voicecmd.config import RecognizerConfig, VoiceConfig
from voicecmd.inference import BlockChannel, FeatureFrontEnd, VoicePipeline, replay_file, replay_samples
from voicecmd.templates import Command, build_template, calibrate_pair

from conftest import SAMPLE_RATE, tone

JUMP_HZ = 500.0
TURN_HZ = 3000.0


def tone_template(freq, config):
    front_end = FeatureFrontEnd(config, stream_time=True)
    vectors = [v for _, v in front_end.push(tone(freq, 0.2))]
    return build_template(vectors, dimension=config.audio.n_coeffs)


@pytest.fixture
def tone_pair(config):
    pair, _ = calibrate_pair([tone_template(JUMP_HZ, config)], [tone_template(TURN_HZ, config)])
    return pair


class TestFeatureFrontEnd:
    """Segmenteur + extracteur."""

    def test_stream_time_stamps(self, config):
        front_end = FeatureFrontEnd(config, stream_time=True)
        stamps = [t for t, _ in front_end.push(tone(JUMP_HZ, 0.05))]
        assert stamps[0] == pytest.approx(256 / SAMPLE_RATE)
        assert np.allclose(np.diff(stamps), 128 / SAMPLE_RATE)

    def test_explicit_time_wins(self, config):
        front_end = FeatureFrontEnd(config, clock=lambda: 99.0)
        assert {t for t, _ in front_end.push(tone(JUMP_HZ, 0.05), now=1.5)} == {1.5}
        assert {t for t, _ in front_end.push(tone(JUMP_HZ, 0.05))} == {99.0}

    def test_silence_yields_nothing(self, config):
        energies = []
        front_end = FeatureFrontEnd(config, on_energy=energies.append)
        assert front_end.push(np.zeros(1024, dtype=np.float32)) == []
        assert len(energies) == 7


class TestVoicePipeline:
    """Bloc audio -> evenements."""

    def test_tone_fires_matching_command(self, tone_pair, config):
        events = replay_samples(tone(JUMP_HZ, 0.3), tone_pair, config)
        assert events
        assert {e.command for e in events} == {Command.JUMP}
        assert events[0].fired_at == pytest.approx((128 + 256) / SAMPLE_RATE)

        events = replay_samples(tone(TURN_HZ, 0.3), tone_pair, config)
        assert {e.command for e in events} == {Command.TURN}

    def test_cooldown_spaces_events(self, tone_pair, config):
        events = replay_samples(tone(JUMP_HZ, 0.5), tone_pair, config)
        assert len(events) >= 2
        gaps = np.diff([e.fired_at for e in events])
        assert np.all(gaps >= config.recognizer.cooldown_s)

    def test_block_size_does_not_change_events(self, tone_pair, config):
        signal = tone(JUMP_HZ, 0.4)
        a = [e.fired_at for e in replay_samples(signal, tone_pair, config, block_size=128)]
        b = [e.fired_at for e in replay_samples(signal, tone_pair, config, block_size=1000)]
        assert a == b

    def test_stop_prevents_events(self, tone_pair, config):
        pipeline = VoicePipeline(tone_pair, config, stream_time=True)
        pipeline.stop()
        assert pipeline.stopped
        assert pipeline.process(tone(JUMP_HZ, 0.3)) == []

    def test_on_fire_listener(self, tone_pair, config):
        fired = []
        pipeline = VoicePipeline(tone_pair, config, stream_time=True, on_fire=fired.append)
        events = pipeline.process(tone(JUMP_HZ, 0.1))
        assert fired == events

    def test_features_do_not_touch_recognizer(self, tone_pair, config):
        pipeline = VoicePipeline(tone_pair, config, stream_time=True)
        vectors = pipeline.features(tone(JUMP_HZ, 0.1))
        assert vectors
        assert all(v.shape == (config.audio.n_coeffs,) for _, v in vectors)
        assert pipeline.recognizer.frame_count == 0

    def test_replay_file(self, tmp_path, tone_pair, config):
        path = tmp_path / "jump_001.wav"
        sf.write(path, tone(JUMP_HZ, 0.3), SAMPLE_RATE, subtype="FLOAT")
        events = replay_file(path, tone_pair, config)
        assert events
        assert {e.command for e in events} == {Command.JUMP}


class TestBlockChannel:
    """Canal a une place entre callback micro et boucle."""

    def test_put_get(self):
        channel = BlockChannel()
        block = np.ones(4, dtype=np.float32)
        channel.put(block)
        got, gap = channel.get(timeout=0.01)
        assert got is block
        assert gap is False

    def test_full_channel_drops_whole_oldest_block(self):
        channel = BlockChannel()
        first = np.zeros(4, dtype=np.float32)
        second = np.ones(4, dtype=np.float32)
        channel.put(first)
        channel.put(second)
        assert channel.dropped == 1

        got, gap = channel.get(timeout=0.01)
        assert got is second
        assert gap is True

        channel.put(first)
        assert channel.get(timeout=0.01)[1] is False

    def test_empty_channel(self):
        assert BlockChannel().get(timeout=0.01) is None

    def test_clear(self):
        channel = BlockChannel()
        channel.put(np.zeros(4, dtype=np.float32))
        channel.clear()
        assert channel.get(timeout=0.01) is None


class TestRealtimeCancellation:
    """Arret demande pendant le traitement d'un bloc micro."""

    def test_no_fire_after_stop_requested(self, monkeypatch, tone_pair):
        config = VoiceConfig(recognizer=RecognizerConfig(cooldown_s=0.0))
        stop = threading.Event()
        fired = []

        def fake_stream(channel, mic_index, sample_rate, block_size):
            channel.put(tone(JUMP_HZ, 0.3))
            return contextlib.nullcontext()

        def on_fire(event):
            fired.append(event)
            stop.set()

        monkeypatch.setattr(inference, "open_input_stream", fake_stream)
        pipeline = inference.run_realtime_detection(tone_pair, config, stop_event=stop, on_fire=on_fire)

        assert len(fired) == 1
        assert pipeline.stopped

    def test_should_stop_checked_per_frame(self, tone_pair, config):
        pipeline = VoicePipeline(tone_pair, config, stream_time=True)
        events = pipeline.process(tone(JUMP_HZ, 0.3), should_stop=lambda: bool(pipeline.recognizer.latencies))
        assert len(events) == 1
        assert pipeline.stopped

"""
Tests du recognizer competitif (marge, hysteresis, cooldown).
"""

import math

import numpy as np
import pytest

from voicecmd.config import RecognizerConfig
from voicecmd.errors import ConfigurationError
from voicecmd.recognition import IDLE, Accumulating, CompetitiveRecognizer
from voicecmd.templates import Command, Template, TemplatePair

from conftest import make_template, unit

HALF_SQRT2 = 0.5 * math.sqrt(2.0)


@pytest.fixture
def pair():
    return TemplatePair(
        jump=make_template(unit(0), HALF_SQRT2),
        turn=make_template(unit(1), HALF_SQRT2),
        auto_threshold=HALF_SQRT2,
    )


@pytest.fixture
def recognizer(pair):
    return CompetitiveRecognizer(pair, RecognizerConfig(), clock=lambda: 0.0)


class TestCompetitiveMatching:
    """Gagnant unique, marge stricte, N frames consecutives."""

    def test_jump_fires_on_second_frame(self, recognizer):
        fired = []
        recognizer.on_fire = fired.append

        assert recognizer.process(unit(0), now=0.0) is None
        assert recognizer.state == Accumulating(Command.JUMP, 1, 0.0, 1)

        event = recognizer.process(unit(0), now=0.01)
        assert event is not None
        assert event.command is Command.JUMP
        assert event.first_match_time == 0.0
        assert event.fired_at == 0.01
        assert event.frame_count == 2
        assert event.latency == pytest.approx(0.01)
        assert fired == [event]
        assert recognizer.state is IDLE
        assert "JUMP" in str(event)

    def test_equidistant_frame_never_fires(self, recognizer):
        middle = unit(0) + unit(1)
        for i in range(10):
            assert recognizer.process(middle, now=i * 0.008) is None
            assert recognizer.state is IDLE
        assert recognizer.last_score.jump_distance == recognizer.last_score.turn_distance
        assert not recognizer.last_score.margin_ok

    def test_loser_streak_is_discarded(self, recognizer):
        recognizer.process(unit(0), now=0.0)
        recognizer.process(unit(1), now=0.008)
        assert recognizer.state.command is Command.TURN
        assert recognizer.state.count == 1

    def test_outside_acceptance_radius(self, pair):
        recognizer = CompetitiveRecognizer(pair, RecognizerConfig(use_delta=False), clock=lambda: 0.0)
        # Plus proche de JUMP, avec marge, mais hors du rayon 0.707.
        far = unit(0) + 0.3 * unit(1) + unit(2)
        for i in range(5):
            assert recognizer.process(far, now=i * 0.008) is None
        assert recognizer.state is IDLE

    def test_volume_does_not_matter(self, recognizer):
        recognizer.process(50.0 * unit(0), now=0.0)
        assert recognizer.process(0.01 * unit(0), now=0.008).command is Command.JUMP

    def test_fallback_radius_without_auto_threshold(self, pair):
        pair.jump.auto_threshold = 0.0
        recognizer = CompetitiveRecognizer(pair, RecognizerConfig(frame_threshold=0.1), clock=lambda: 0.0)
        assert recognizer.acceptance_radius(pair.jump) == 0.1
        assert recognizer.acceptance_radius(pair.turn) == pytest.approx(HALF_SQRT2)


class TestCooldown:
    """Verrouillage apres declenchement."""

    def test_no_second_fire_within_cooldown(self, recognizer):
        recognizer.process(unit(0), now=0.0)
        assert recognizer.process(unit(0), now=0.01) is not None

        for t in (0.02, 0.05, 0.1, 0.15):
            assert recognizer.process(unit(0), now=t) is None
            assert recognizer.state is IDLE

        assert recognizer.process(unit(0), now=0.2) is None
        event = recognizer.process(unit(0), now=0.21)
        assert event is not None
        assert event.command is Command.JUMP
        assert event.first_match_time == 0.2

    def test_cooldown_follows_frame_time_not_wall_clock(self, recognizer):
        # Horloge murale a 0: seuls les instants des frames comptent.
        recognizer.process(unit(0), now=100.0)
        assert recognizer.process(unit(0), now=100.01) is not None
        assert recognizer.unlock_time == pytest.approx(100.16)
        assert recognizer.process(unit(0), now=100.1) is None
        assert recognizer.state is IDLE
        recognizer.process(unit(0), now=100.2)
        assert recognizer.state.count == 1

    def test_locked_frames_are_counted_but_ignored(self, recognizer):
        recognizer.process(unit(0), now=0.0)
        recognizer.process(unit(0), now=0.01)
        before = recognizer.previous.copy()
        recognizer.process(unit(1), now=0.05)
        assert recognizer.frame_count == 3
        assert np.array_equal(recognizer.previous, before)


class TestDegradedTemplates:
    """Templates absents ou incomplets."""

    def test_one_frame_template_never_wins(self):
        pair = TemplatePair(
            jump=Template(frames=[unit(0)], centroid=unit(0), auto_threshold=HALF_SQRT2),
            turn=make_template(unit(1), HALF_SQRT2),
        )
        recognizer = CompetitiveRecognizer(pair, clock=lambda: 0.0)
        for i in range(6):
            assert recognizer.process(unit(0), now=i * 0.008) is None
        assert recognizer.last_score.jump_distance == math.inf

    def test_missing_side_still_recognizes_other(self):
        pair = TemplatePair(turn=make_template(unit(1), HALF_SQRT2))
        recognizer = CompetitiveRecognizer(pair, clock=lambda: 0.0)
        recognizer.process(unit(1), now=0.0)
        assert recognizer.process(unit(1), now=0.008).command is Command.TURN

    def test_empty_pair_is_logged(self, caplog):
        with caplog.at_level("WARNING", logger="voicecmd.recognition"):
            recognizer = CompetitiveRecognizer(TemplatePair(), clock=lambda: 0.0)
        assert recognizer.process(unit(0), now=0.0) is None
        assert "Aucun template" in caplog.text


class TestLifecycle:
    """stop / reset, dimensions, statistiques."""

    def test_stop_cancels_pending_streak(self, recognizer):
        recognizer.process(unit(0), now=0.0)
        recognizer.stop()
        assert recognizer.process(unit(0), now=0.008) is None
        assert recognizer.state is IDLE

        recognizer.reset()
        recognizer.process(unit(0), now=0.016)
        assert recognizer.process(unit(0), now=0.024) is not None

    def test_wrong_dimension_rejected(self, recognizer):
        with pytest.raises(ConfigurationError):
            recognizer.process(np.ones(4), now=0.0)

    def test_templates_of_different_dimensions_rejected(self):
        pair = TemplatePair(
            jump=make_template(unit(0), 0.5),
            turn=make_template(unit(1, dim=4), 0.5),
        )
        with pytest.raises(ConfigurationError):
            CompetitiveRecognizer(pair)

    def test_latency_statistics(self):
        now = [0.0]
        pair = TemplatePair(jump=make_template(unit(0), 0.5), turn=make_template(unit(1), 0.5))
        recognizer = CompetitiveRecognizer(pair, clock=lambda: now[0])
        assert recognizer.average_latency() == 0.0

        recognizer.process(unit(0), now=1.0)
        recognizer.process(unit(0), now=1.016)
        now[0] = 3.0
        assert recognizer.average_latency() == pytest.approx(0.016)
        assert recognizer.uptime() == pytest.approx(3.0)

"""
Fixtures partagees: configurations, vecteurs unitaires, tons synthetiques.

Aucun test ne touche au materiel audio.
"""

import numpy as np
import pytest

from voicecmd.config import VoiceConfig
from voicecmd.templates import Template

DIM = 6
SAMPLE_RATE = 16000


def unit(i, dim=DIM):
    v = np.zeros(dim)
    v[i] = 1.0
    return v


def make_template(centroid, threshold, n_frames=5):
    """Template synthetique: frames = centroide, delta nul."""
    centroid = np.asarray(centroid, dtype=np.float64)
    return Template(
        frames=[centroid.copy() for _ in range(n_frames)],
        centroid=centroid.copy(),
        delta_coefficients=np.zeros(centroid.size),
        energy_profile=np.array([1.0, 1.0, 1.0]),
        auto_threshold=threshold,
    )


def tone(freq, duration_s, amplitude=0.3, sample_rate=SAMPLE_RATE):
    t = np.arange(int(duration_s * sample_rate)) / float(sample_rate)
    return (amplitude * np.sin(2.0 * np.pi * freq * t)).astype(np.float32)


@pytest.fixture
def config():
    return VoiceConfig()


@pytest.fixture
def rng():
    return np.random.default_rng(1234)

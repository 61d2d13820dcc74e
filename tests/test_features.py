"""
Tests de l'extraction MFCC.
"""

import numpy as np
import pytest

from voicecmd.config import AudioConfig
from voicecmd.errors import ConfigurationError
from voicecmd.features import (
    FeatureExtractor,
    hamming_window,
    hz_to_mel,
    magnitude_spectrum,
    mel_filterbank,
    mel_to_hz,
    normalize,
)

from conftest import tone


class TestNormalize:
    """Normalisation L2."""

    def test_unit_norm(self, rng):
        for _ in range(10):
            v = rng.normal(size=6) * 50.0
            assert np.linalg.norm(normalize(v)) == pytest.approx(1.0)

    def test_near_zero_returned_unchanged(self):
        v = np.full(6, 1e-10)
        result = normalize(v)
        assert np.array_equal(result, v)
        assert result is not v

    def test_non_finite_values_clamped(self):
        result = normalize(np.array([np.nan, np.inf, 3.0, 4.0, 0.0, 0.0]))
        assert np.all(np.isfinite(result))
        assert np.allclose(result[2:4], [0.6, 0.8])


class TestBuildingBlocks:
    """Fenetre, conversions mel, banc de filtres, spectre."""

    def test_hamming_endpoints(self):
        w = hamming_window(256)
        assert w.shape == (256,)
        assert w[0] == pytest.approx(0.08)
        assert w[-1] == pytest.approx(0.08)

    def test_mel_hz_round_trip(self):
        assert hz_to_mel(1000.0) == pytest.approx(1000.0, abs=0.1)
        assert mel_to_hz(hz_to_mel(4321.0)) == pytest.approx(4321.0)

    def test_filterbank_covers_half_spectrum(self):
        bank = mel_filterbank(26, 256, 16000)
        assert bank.shape == (26, 128)
        assert bank.min() >= 0.0
        assert bank.max() <= 1.0

    def test_fft_matches_dft(self, rng):
        frame = rng.normal(size=256)
        fast = magnitude_spectrum(frame, "fft")
        slow = magnitude_spectrum(frame, "dft")
        assert fast.shape == slow.shape == (128,)
        assert np.allclose(fast, slow, atol=1e-8)

    def test_unknown_method(self):
        with pytest.raises(ConfigurationError):
            magnitude_spectrum(np.zeros(8), "cqt")


class TestFeatureExtractor:
    """Pipeline complet frame -> coefficients."""

    def test_output_dimension(self):
        extractor = FeatureExtractor(AudioConfig())
        coeffs = extractor.extract(tone(1000.0, 0.016))
        assert coeffs.shape == (6,)
        assert coeffs.dtype == np.float64
        assert extractor.dimension == 6

    def test_silent_frame_stays_finite(self):
        coeffs = FeatureExtractor().extract(np.zeros(256))
        assert np.all(np.isfinite(coeffs))

    def test_wrong_frame_length_rejected(self):
        with pytest.raises(ConfigurationError):
            FeatureExtractor().extract(np.zeros(255))

    def test_input_frame_not_modified(self, rng):
        frame = rng.normal(size=256)
        before = frame.copy()
        FeatureExtractor().extract(frame)
        assert np.array_equal(frame, before)

    def test_dft_path_matches_fft_path(self, rng):
        frame = rng.normal(size=256) * 0.1
        fast = FeatureExtractor(AudioConfig(spectrum="fft")).extract(frame)
        slow = FeatureExtractor(AudioConfig(spectrum="dft")).extract(frame)
        assert np.allclose(fast, slow, atol=1e-6)

    def test_non_power_of_two_frame_with_dft(self, rng):
        extractor = FeatureExtractor(AudioConfig(frame_size=200, hop_size=100, spectrum="dft"))
        assert extractor.filterbank.shape == (26, 100)
        assert extractor.extract(rng.normal(size=200)).shape == (6,)

    def test_different_tones_are_separated(self):
        extractor = FeatureExtractor()
        low = normalize(extractor.extract(tone(500.0, 0.016)))
        high = normalize(extractor.extract(tone(3000.0, 0.016)))
        assert np.linalg.norm(low - high) > 0.01

    def test_extract_many(self):
        extractor = FeatureExtractor()
        assert extractor.extract_many([]).shape == (0, 6)
        frames = [tone(500.0, 0.016), tone(800.0, 0.016)]
        assert extractor.extract_many(frames).shape == (2, 6)

    def test_precomputed_tables_are_read_only(self):
        extractor = FeatureExtractor()
        with pytest.raises(ValueError):
            extractor.window[0] = 1.0

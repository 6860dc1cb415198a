"""Unit tests for MFCC extraction"""

import logging

import numpy as np
import pytest

from pronunciation_engine.analysis.mfcc import MFCCAnalyzer, dct_matrix, lifter_weights
from pronunciation_engine.models import SampleBuffer
from tests.signals import SAMPLE_RATE


@pytest.fixture
def analyzer():
    return MFCCAnalyzer()


class TestBasis:
    """Tests for the DCT basis and liftering"""

    def test_dct_first_row_is_constant(self):
        basis = dct_matrix(13, 60)
        assert basis.shape == (13, 60)
        np.testing.assert_allclose(basis[0], np.sqrt(2.0 / 60))

    def test_dct_rows_are_orthogonal(self):
        basis = dct_matrix(13, 60)
        gram = basis @ basis.T
        off_diagonal = gram - np.diag(np.diag(gram))
        assert np.max(np.abs(off_diagonal)) < 1e-10

    def test_lifter(self):
        weights = lifter_weights(13, 22)
        assert weights[0] == pytest.approx(1.0)
        assert weights[11] == pytest.approx(12.0)
        np.testing.assert_array_equal(lifter_weights(13, 0), np.ones(13))


class TestExtractMFCC:
    """Tests for MFCC track extraction"""

    def test_shape_and_times(self, analyzer, speech_buffer):
        track = analyzer.extract_mfcc(speech_buffer)

        expected_frames = len(np.arange(0, len(speech_buffer.samples) - 2048, 128))
        assert len(track) == expected_frames
        assert track.coefficients.shape == (expected_frames, 13)
        assert track.deltas.shape == (expected_frames, 13)
        assert track.delta_deltas.shape == (expected_frames, 13)
        assert track.frames[1].time - track.frames[0].time == pytest.approx(128 / SAMPLE_RATE)

    def test_cepstral_mean_normalization(self, analyzer, speech_buffer):
        """Test that coefficients 1.. have zero mean and coefficient 0 is untouched"""
        track = analyzer.extract_mfcc(speech_buffer)
        static = analyzer.extract_static(speech_buffer)

        means = track.coefficients.mean(axis=0)
        np.testing.assert_allclose(means[1:], 0.0, atol=1e-9)
        np.testing.assert_allclose(track.coefficients[:, 0], static[:, 0])
        np.testing.assert_allclose(track.original_means, static.mean(axis=0))

    def test_finite_on_silence(self, analyzer, silence_buffer):
        track = analyzer.extract_mfcc(silence_buffer)
        assert len(track) > 0
        assert np.all(np.isfinite(track.coefficients))

    def test_short_buffer(self, analyzer, caplog):
        buffer = SampleBuffer(samples=np.zeros(1000), sample_rate=SAMPLE_RATE)
        with caplog.at_level(logging.WARNING):
            track = analyzer.extract_mfcc(buffer)

        assert len(track) == 0
        assert track.coefficients.shape == (0, 13)
        assert "too short" in caplog.text

    def test_full_features(self, analyzer, speech_buffer):
        track = analyzer.extract_mfcc(speech_buffer)
        features = MFCCAnalyzer.extract_full_features(track)
        assert features.shape == (len(track), 39)

    def test_frame_coeffs_are_read_only(self, analyzer, speech_buffer):
        """Test that frames own read-only coefficients instead of sharing one matrix"""
        track = analyzer.extract_mfcc(speech_buffer)
        first, second = track.frames[0], track.frames[1]

        with pytest.raises(ValueError):
            first.coeffs[0] = 1.0
        assert not np.shares_memory(first.coeffs, second.coeffs)
        assert first.coeffs.base is None


class TestDeltas:
    """Tests for regression deltas"""

    def test_ramp(self):
        coeffs = np.arange(10, dtype=float)[:, None] * np.ones((1, 3))
        deltas = MFCCAnalyzer.extract_deltas(coeffs, window=2)

        np.testing.assert_allclose(deltas[2:8], 1.0)
        # clamped edges see a shorter slope
        assert deltas[0, 0] < 1.0
        assert deltas[-1, 0] < 1.0

    def test_constant(self):
        deltas = MFCCAnalyzer.extract_deltas(np.full((8, 4), 3.0))
        np.testing.assert_array_equal(deltas, np.zeros((8, 4)))

    def test_too_few_frames(self, caplog):
        with caplog.at_level(logging.WARNING):
            deltas = MFCCAnalyzer.extract_deltas(np.ones((4, 13)), window=2)
        np.testing.assert_array_equal(deltas, np.zeros((4, 13)))
        assert "Not enough frames" in caplog.text

    def test_delta_deltas_of_ramp_vanish_inside(self, analyzer):
        coeffs = np.arange(20, dtype=float)[:, None]
        delta_deltas = analyzer.extract_delta_deltas(coeffs)
        np.testing.assert_allclose(delta_deltas[4:16], 0.0, atol=1e-12)


class TestDistances:
    """Tests for frame distances"""

    def test_cosine_identical(self):
        v = np.array([1.0, -2.0, 3.0])
        assert MFCCAnalyzer.cosine_distance(v, v) == pytest.approx(0.0, abs=1e-9)

    def test_cosine_opposite(self):
        v = np.array([1.0, -2.0, 3.0])
        assert MFCCAnalyzer.cosine_distance(v, -v) == pytest.approx(2.0, abs=1e-9)

    def test_cosine_orthogonal(self):
        assert MFCCAnalyzer.cosine_distance([1.0, 0.0], [0.0, 1.0]) == pytest.approx(1.0)

    def test_euclidean(self):
        assert MFCCAnalyzer.euclidean_distance([0.0, 0.0], [3.0, 4.0]) == pytest.approx(5.0)

    def test_euclidean_uses_common_prefix(self):
        assert MFCCAnalyzer.euclidean_distance([0.0, 0.0, 100.0], [3.0, 4.0]) == pytest.approx(5.0)

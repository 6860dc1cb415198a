"""Unit tests for data models"""

import numpy as np
import pytest

from pronunciation_engine.models import (
    ComparisonResult,
    DimensionScore,
    DTWResult,
    FormantFrame,
    InvalidAudioError,
    MFCCTrack,
    PitchFrame,
    PitchTrack,
    SampleBuffer,
    StressComparison,
    formants_plausible,
)


class TestSampleBuffer:
    """Tests for SampleBuffer model"""

    def test_create_valid_buffer(self):
        """Test creating a valid buffer from a list"""
        buffer = SampleBuffer(samples=[0.0, 0.5, -0.5, 1.0], sample_rate=16000)

        assert buffer.samples.dtype == np.float64
        assert buffer.sample_rate == 16000
        assert len(buffer) == 4
        assert buffer.duration == pytest.approx(4 / 16000)

    def test_samples_are_copied_and_read_only(self):
        samples = np.ones(100, dtype=np.float32)
        buffer = SampleBuffer(samples=samples, sample_rate=8000)
        samples[0] = 5.0

        assert buffer.samples[0] == 1.0
        with pytest.raises(ValueError):
            buffer.samples[0] = 2.0

    def test_integral_float_rate_is_accepted(self):
        buffer = SampleBuffer(samples=np.zeros(10), sample_rate=22050.0)
        assert buffer.sample_rate == 22050
        assert isinstance(buffer.sample_rate, int)

    @pytest.mark.parametrize("samples,rate", [
        ([], 16000),
        ([0.1, float('nan')], 16000),
        ([0.1, float('inf')], 16000),
        (np.zeros((2, 100)), 16000),
        (np.zeros(100), 0),
        (np.zeros(100), -16000),
        (np.zeros(100), 44100.5),
        (np.zeros(100), True),
        (np.zeros(100), "16000"),
        (["a", "b"], 16000),
    ])
    def test_invalid_buffers(self, samples, rate):
        """Test that malformed input raises InvalidAudioError"""
        with pytest.raises(InvalidAudioError):
            SampleBuffer(samples=samples, sample_rate=rate)

    def test_invalid_audio_error_is_value_error(self):
        assert issubclass(InvalidAudioError, ValueError)


class TestFrames:
    """Tests for per-frame models"""

    def test_pitch_frame(self):
        assert PitchFrame(time=0.1, pitch_hz=150.0, confidence=0.9).voiced
        assert not PitchFrame(time=0.1, pitch_hz=0.0, confidence=0.1).voiced

    def test_pitch_frame_validation(self):
        with pytest.raises(AssertionError):
            PitchFrame(time=0.0, pitch_hz=-1.0, confidence=0.5)
        with pytest.raises(AssertionError):
            PitchFrame(time=0.0, pitch_hz=100.0, confidence=1.5)
        with pytest.raises(AssertionError):
            PitchFrame(time=-0.1, pitch_hz=100.0, confidence=0.5)

    def test_formant_plausibility(self):
        assert formants_plausible(500, 1500, 2500)
        assert not formants_plausible(1500, 1400, 2500)
        assert not formants_plausible(50, 1500, 2500)
        assert not formants_plausible(500, 4000, 4200)
        assert not formants_plausible(500, 1500, 5000)

    def test_voiced_formant_frame_must_be_plausible(self):
        with pytest.raises(AssertionError):
            FormantFrame(time=0.0, f1=1600.0, f2=1500.0, f3=2500.0, voiced=True)

    def test_unvoiced_formant_frame_is_not_checked(self):
        frame = FormantFrame(time=0.0, f1=0.0, f2=0.0, f3=0.0, voiced=False)
        assert not frame.voiced


class TestTracks:
    """Tests for track models"""

    def test_pitch_track_values(self):
        frames = tuple(
            PitchFrame(time=i * 0.01, pitch_hz=p, confidence=0.5)
            for i, p in enumerate([0.0, 120.0, 0.0, 130.0])
        )
        track = PitchTrack(frames=frames)

        assert len(track) == 4
        np.testing.assert_allclose(track.times, [0.0, 0.01, 0.02, 0.03])
        np.testing.assert_array_equal(track.voiced_values(), [120.0, 130.0])

    def test_empty_mfcc_track(self):
        track = MFCCTrack(frames=(), deltas=np.zeros((0, 13)), delta_deltas=np.zeros((0, 13)),
                          original_means=np.zeros(13))
        assert track.coefficients.shape == (0, 13)


class TestResults:
    """Tests for result models"""

    def test_dtw_result_validation(self):
        with pytest.raises(AssertionError):
            DTWResult(distance=-1.0, normalized_distance=0.0)

    def test_dimension_score_range(self):
        assert DimensionScore(score=100.0).fallback_reason is None
        with pytest.raises(AssertionError):
            DimensionScore(score=100.5)
        with pytest.raises(AssertionError):
            DimensionScore(score=-1.0)

    def test_stress_comparison_range(self):
        with pytest.raises(AssertionError):
            StressComparison(score=50, position_score=120, matched=0,
                             native_peak_count=0, user_peak_count=0)

    def test_comparison_result_breakdown_range(self):
        with pytest.raises(AssertionError):
            ComparisonResult(overall_score=50.0, breakdown={'pitch': 101.0}, detailed_report={},
                             feedback="", native_features=None, user_features=None)

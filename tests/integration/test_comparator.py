"""Integration tests for end-to-end pronunciation comparison"""

import math

import numpy as np
import pytest

from pronunciation_engine.config import AnalysisConfig, ScoringConfig
from pronunciation_engine.models import InvalidAudioError, SampleBuffer
from pronunciation_engine.scoring import PronunciationComparator
from pronunciation_engine.scoring.comparator import DIMENSIONS
from tests.signals import SAMPLE_RATE, syllable_signal


def _finite(value) -> bool:
    if isinstance(value, dict):
        return all(_finite(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return all(_finite(v) for v in value)
    if isinstance(value, (float, np.floating)):
        return math.isfinite(value)
    return True


@pytest.fixture(scope="module")
def comparator():
    return PronunciationComparator()


@pytest.fixture(scope="module")
def point_comparator():
    return PronunciationComparator(AnalysisConfig(scoring=ScoringConfig(use_dtw=False)))


class TestIdenticalRecordings:
    """Test that a recording compared with itself scores perfectly"""

    @pytest.mark.parametrize("mode", ["dtw", "point_by_point"])
    def test_perfect_score(self, mode, comparator, point_comparator, speech_buffer):
        engine = comparator if mode == "dtw" else point_comparator
        result = engine.compare(speech_buffer, speech_buffer)

        assert result.overall_score == 100
        assert set(result.breakdown) == set(DIMENSIONS)
        for name, score in result.breakdown.items():
            assert score == 100, f"{name} scored {score}"
        assert result.detailed_report['fallbacks'] == []
        assert result.feedback == "Excellent pronunciation!"

    def test_deterministic(self, comparator, speech_buffer):
        first = comparator.compare(speech_buffer, speech_buffer)
        second = comparator.compare(speech_buffer, speech_buffer)
        assert first.breakdown == second.breakdown
        assert first.detailed_report['scoring'] == second.detailed_report['scoring']

    def test_report_sections(self, comparator, speech_buffer):
        report = comparator.compare(speech_buffer, speech_buffer).detailed_report

        assert set(report) == {
            'metadata', 'pitch', 'formants', 'mfcc', 'envelope', 'duration', 'stress',
            'quality', 'intensity', 'spectrum', 'fallbacks', 'scoring',
        }
        assert report['metadata']['use_dtw'] is True
        assert report['scoring']['overall_score'] == 100
        assert sum(report['scoring']['weights'].values()) == pytest.approx(1.0)
        assert report['stress']['native_peaks'] == 2


class TestSilence:
    """Test that silent recordings degrade to neutral scores instead of failing"""

    def test_silence_vs_silence(self, comparator, silence_buffer):
        result = comparator.compare(silence_buffer, silence_buffer)
        report = result.detailed_report

        assert 0 <= result.overall_score <= 100
        assert _finite(report)
        assert result.breakdown['pitch'] == 50
        assert result.breakdown['stress'] == 50
        assert result.breakdown['stress_position'] == 50
        assert report['pitch']['native']['voiced_frames'] == 0

        dimensions = {entry['dimension'] for entry in report['fallbacks']}
        assert {'pitch', 'formants', 'envelope', 'stress', 'stress_position'} <= dimensions

    def test_speech_vs_silence(self, comparator, speech_buffer, silence_buffer):
        result = comparator.compare(speech_buffer, silence_buffer)
        assert 0 <= result.overall_score < 100
        assert result.breakdown['pitch'] == 50

    def test_report_lists_fallback_frames(self, comparator, speech_buffer, silence_buffer):
        """Test that the report names every formant and pitch frame that fell back"""
        report = comparator.compare(speech_buffer, silence_buffer).detailed_report

        user_total = report['formants']['user']['total_frames']
        user_fallbacks = report['formants']['frame_fallbacks']['user']
        assert user_fallbacks['frames'] == {'unvoiced': list(range(user_total))}
        assert user_fallbacks['counts'] == {'unvoiced': user_total}

        native_fallbacks = report['formants']['frame_fallbacks']['native']
        for reason, indices in native_fallbacks['frames'].items():
            assert native_fallbacks['counts'][reason] == len(indices)
            assert indices == sorted(indices)

        pitch = report['pitch']
        assert pitch['unvoiced_frames']['user'] == list(range(pitch['user']['total_frames']))
        assert len(pitch['unvoiced_frames']['native']) == pitch['native']['unvoiced_frames']


class TestMispronunciation:
    """Test that recognisable errors lower the matching dimensions"""

    def test_swapped_stress(self, comparator, speech_buffer):
        swapped = SampleBuffer(
            samples=syllable_signal(syllables=((0.3, 0.6), (0.7, 1.0))),
            sample_rate=SAMPLE_RATE,
        )
        result = comparator.compare(speech_buffer, swapped)

        assert result.breakdown['stress_position'] < 50
        assert result.overall_score < 100
        assert "main stress" in result.feedback

    def test_slower_speech(self, comparator, speech_buffer):
        slow = SampleBuffer(
            samples=syllable_signal(duration=1.5, syllables=((0.45, 1.0), (1.05, 0.6)), width=0.105),
            sample_rate=SAMPLE_RATE,
        )
        result = comparator.compare(speech_buffer, slow)

        assert result.breakdown['duration'] == 50
        assert result.breakdown['stress_position'] > 80

    def test_different_pitch_register(self, comparator, speech_buffer):
        """Test that a higher voice with the same contour keeps a high pitch score"""
        higher = SampleBuffer(samples=syllable_signal(f0=200.0), sample_rate=SAMPLE_RATE)
        result = comparator.compare(speech_buffer, higher)
        assert result.breakdown['pitch'] > 80


class TestInvalidInput:
    """Test input validation"""

    def test_too_short(self, comparator, speech_buffer):
        short = SampleBuffer(samples=np.zeros(1024), sample_rate=SAMPLE_RATE)
        with pytest.raises(InvalidAudioError):
            comparator.compare(speech_buffer, short)


class TestLengthMismatch:
    """Test recordings whose lengths differ by far more than the DTW band"""

    @pytest.mark.parametrize("mode", ["dtw", "point_by_point"])
    def test_short_native_long_user(self, mode, comparator, point_comparator, speech_buffer):
        engine = comparator if mode == "dtw" else point_comparator
        native = SampleBuffer(samples=syllable_signal()[:2200], sample_rate=SAMPLE_RATE)

        result = engine.compare(native, speech_buffer)

        assert 0 <= result.overall_score <= 100
        assert set(result.breakdown) == set(DIMENSIONS)
        assert all(math.isfinite(score) for score in result.breakdown.values())
        assert _finite(result.detailed_report)

    def test_long_native_short_user(self, comparator, speech_buffer):
        user = SampleBuffer(samples=syllable_signal()[:2200], sample_rate=SAMPLE_RATE)
        result = comparator.compare(speech_buffer, user)

        assert 0 <= result.overall_score <= 100
        assert all(math.isfinite(score) for score in result.breakdown.values())


class TestAsync:
    """Test the asyncio entry point"""

    @pytest.mark.asyncio
    async def test_compare_async(self, comparator, speech_buffer):
        result = await comparator.compare_async(speech_buffer, speech_buffer)
        expected = comparator.compare(speech_buffer, speech_buffer)

        assert result.overall_score == expected.overall_score
        assert result.breakdown == expected.breakdown

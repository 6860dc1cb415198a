"""Unit tests for intensity, voice quality and stress analysis"""

import logging

import numpy as np
import pytest

from pronunciation_engine.analysis.intensity import IntensityAnalyzer, StressAnalyzer
from pronunciation_engine.config import StressConfig
from pronunciation_engine.models import IntensityFrame, SampleBuffer, StressPeak
from tests.signals import SAMPLE_RATE


@pytest.fixture
def analyzer():
    return IntensityAnalyzer()


@pytest.fixture
def stress():
    return StressAnalyzer()


def make_intensity(values, step=0.032):
    return tuple(IntensityFrame(time=i * step, rms_intensity=float(v)) for i, v in enumerate(values))


def sine(freq, n=4096):
    t = np.arange(n) / SAMPLE_RATE
    return SampleBuffer(samples=0.5 * np.sin(2 * np.pi * freq * t), sample_rate=SAMPLE_RATE)


class TestIntensityTracks:
    """Tests for RMS, zero-crossing and tilt tracks"""

    def test_rms_of_constant(self, analyzer):
        buffer = SampleBuffer(samples=np.full(4096, 0.5), sample_rate=SAMPLE_RATE)
        track = analyzer.extract_intensity(buffer)

        assert len(track) == 4
        assert [f.time for f in track] == pytest.approx([0.0, 0.032, 0.064, 0.096])
        for frame in track:
            assert frame.rms_intensity == pytest.approx(0.5)

    def test_zcr_of_alternating_signal(self, analyzer):
        samples = np.tile([1.0, -1.0], 2048)
        track = analyzer.extract_zcr(SampleBuffer(samples=samples, sample_rate=SAMPLE_RATE))

        assert len(track) == 4
        for frame in track:
            assert frame.zcr == pytest.approx(2047 / 2048)

    def test_zcr_of_constant(self, analyzer):
        buffer = SampleBuffer(samples=np.full(4096, 0.5), sample_rate=SAMPLE_RATE)
        assert all(f.zcr == 0.0 for f in analyzer.extract_zcr(buffer))

    def test_spectral_tilt(self, analyzer):
        """Test that low tones tilt above 1 and high tones below 1"""
        low = analyzer.extract_spectral_tilt(sine(200))
        high = analyzer.extract_spectral_tilt(sine(7000))

        assert low and high
        assert all(f.tilt > 1.0 for f in low)
        assert all(f.tilt < 1.0 for f in high)

    def test_short_buffer(self, analyzer):
        buffer = SampleBuffer(samples=np.zeros(500), sample_rate=SAMPLE_RATE)
        assert analyzer.extract_intensity(buffer) == ()
        assert analyzer.extract_zcr(buffer) == ()
        assert analyzer.extract_spectral_tilt(buffer) == ()

    def test_envelope(self, analyzer):
        envelope = analyzer.extract_envelope(np.full(4800, 0.5))
        assert len(envelope) == len(np.arange(0, 4800 - 480, 240))
        np.testing.assert_allclose(envelope, 0.5)

    def test_envelope_custom_window(self, analyzer):
        envelope = analyzer.extract_envelope(np.ones(1000), window_size=100, hop_size=100)
        assert len(envelope) == 9

    def test_envelope_too_short(self, analyzer):
        assert len(analyzer.extract_envelope(np.ones(100))) == 0


class TestFindPeaks:
    """Tests for stress peak detection"""

    def test_two_peaks(self, stress):
        values = np.full(30, 0.1)
        values[9:12] = [0.5, 1.0, 0.5]
        values[19:22] = [0.3, 0.6, 0.3]
        peaks = stress.find_peaks(make_intensity(values))

        assert [p.index for p in peaks] == [10, 20]
        assert peaks[0].height == pytest.approx(1.0)
        assert peaks[1].height == pytest.approx(0.6)
        assert peaks[1].time == pytest.approx(20 * 0.032)

    def test_height_threshold(self, stress):
        values = np.full(30, 0.1)
        values[10] = 1.0
        values[20] = 0.3
        peaks = stress.find_peaks(make_intensity(values))
        assert [p.index for p in peaks] == [10]

        peaks = stress.find_peaks(make_intensity(values), min_height=0.2)
        assert [p.index for p in peaks] == [10, 20]

    def test_plateau_is_not_a_peak(self, stress):
        values = np.full(30, 0.1)
        values[10:12] = 1.0
        assert stress.find_peaks(make_intensity(values)) == []

    def test_edges_are_ignored(self, stress):
        values = np.full(30, 0.1)
        values[2] = 1.0
        values[27] = 0.9
        assert stress.find_peaks(make_intensity(values)) == []

    def test_too_few_frames(self, stress, caplog):
        with caplog.at_level(logging.WARNING):
            assert stress.find_peaks(make_intensity([0.1, 1.0, 0.1] * 3)) == []
        assert "Too few frames" in caplog.text

    def test_zero_track(self, stress):
        assert stress.find_peaks(make_intensity(np.zeros(30))) == []


class TestComparePeakPatterns:
    """Tests for stress pattern scoring"""

    def test_matching_patterns(self, stress):
        native = [StressPeak(time=0.10, height=1.0, index=3), StressPeak(time=0.45, height=0.6, index=14)]
        user = [StressPeak(time=0.12, height=0.95, index=4), StressPeak(time=0.47, height=0.55, index=15)]
        result = stress.compare_peak_patterns(native, user, 0.6, 0.6)

        assert result.matched == 2
        assert result.score == 100
        # strongest peaks at 0.1/0.6 and 0.12/0.6
        assert result.position_score == 93
        assert result.reason is None
        assert result.details['tolerance'] == pytest.approx(0.1)

    def test_no_peaks(self, stress):
        native = [StressPeak(time=0.10, height=1.0, index=3)]
        result = stress.compare_peak_patterns(native, [], 0.6, 0.6)

        assert result.score == 50
        assert result.position_score == 50
        assert result.native_peak_count == 1
        assert result.user_peak_count == 0
        assert result.reason == "Insufficient stress peaks"

    def test_count_penalty(self, stress):
        native = [StressPeak(time=0.2, height=1.0, index=6), StressPeak(time=0.8, height=0.5, index=25)]
        user = [
            StressPeak(time=0.2, height=1.0, index=6),
            StressPeak(time=0.5, height=0.4, index=15),
            StressPeak(time=0.8, height=0.5, index=25),
        ]
        result = stress.compare_peak_patterns(native, user, 1.0, 1.0)

        assert result.matched == 2
        assert result.score == 90
        assert result.position_score == 100

    def test_height_mismatch(self, stress):
        native = [StressPeak(time=0.2, height=1.0, index=6), StressPeak(time=0.8, height=0.9, index=25)]
        user = [StressPeak(time=0.2, height=1.0, index=6), StressPeak(time=0.8, height=0.4, index=25)]
        result = stress.compare_peak_patterns(native, user, 1.0, 1.0)
        assert result.matched == 1
        assert result.score == 50

    def test_swapped_stress_position(self, stress):
        native = [StressPeak(time=0.3, height=1.0, index=9), StressPeak(time=0.7, height=0.6, index=22)]
        user = [StressPeak(time=0.3, height=0.6, index=9), StressPeak(time=0.7, height=1.0, index=22)]
        result = stress.compare_peak_patterns(native, user, 1.0, 1.0)
        assert result.position_score == 20

    def test_position_uses_relative_time(self, stress):
        """Test that a slower user with the same relative stress scores fully"""
        native = [StressPeak(time=0.25, height=1.0, index=8)]
        user = [StressPeak(time=0.5, height=1.0, index=16)]
        result = stress.compare_peak_patterns(native, user, 1.0, 2.0)
        assert result.position_score == 100

    def test_configured_penalty(self):
        analyzer = StressAnalyzer(StressConfig(count_penalty=25.0))
        native = [StressPeak(time=0.2, height=1.0, index=6)]
        user = [StressPeak(time=0.2, height=1.0, index=6), StressPeak(time=0.6, height=0.5, index=18)]
        assert analyzer.compare_peak_patterns(native, user, 1.0, 1.0).score == 75

    def test_compare_stress_pattern(self, stress):
        values = np.full(30, 0.1)
        values[9:12] = [0.5, 1.0, 0.5]
        track = make_intensity(values)
        result = stress.compare_stress_pattern(track, track)
        assert result.score == 100
        assert result.position_score == 100


class TestTrackHelpers:
    """Tests for duration and anomaly helpers"""

    def test_track_duration(self):
        assert StressAnalyzer.track_duration(make_intensity(np.ones(10), step=0.032)) == pytest.approx(0.32)
        assert StressAnalyzer.track_duration(()) == 1.0

    def test_detect_anomalies(self):
        values = np.ones(10)
        values[5] = 10.0
        report = StressAnalyzer.detect_anomalies(make_intensity(values))

        assert report['spikes'] == 1
        assert report['drops'] == 0
        assert report['mean'] == pytest.approx(1.9)
        assert report['dynamic_range'] == pytest.approx(10.0)

    def test_detect_anomalies_empty(self):
        report = StressAnalyzer.detect_anomalies(())
        assert report == {'mean': 0.0, 'std': 0.0, 'spikes': 0, 'drops': 0, 'dynamic_range': 0.0}

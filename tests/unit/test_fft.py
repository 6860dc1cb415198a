"""Unit tests for the FFT processor"""

import logging

import numpy as np
import pytest

from pronunciation_engine.analysis.fft import FFTProcessor
from pronunciation_engine.config import FFTConfig
from pronunciation_engine.models import SampleBuffer


@pytest.fixture
def fft():
    return FFTProcessor()


class TestFFT:
    """Tests for the radix-2 transform"""

    def test_sine_peak(self, fft):
        """Test that a bin-centred sine peaks at its bin with amplitude n/2"""
        n = 64
        t = np.arange(n)
        magnitude = fft.compute_fft(np.sin(2 * np.pi * 8 * t / n))

        assert len(magnitude) == n // 2
        assert np.argmax(magnitude) == 8
        assert magnitude[8] == pytest.approx(n / 2)

    def test_matches_numpy(self, fft):
        rng = np.random.default_rng(1)
        signal = rng.standard_normal(256)
        expected = np.abs(np.fft.fft(signal))[:128]
        np.testing.assert_allclose(fft.compute_fft(signal), expected, atol=1e-9)

    def test_zero_padding(self, fft):
        """Test that inputs are padded to the next power of two"""
        signal = np.ones(100)
        magnitude = fft.compute_fft(signal)
        padded = np.zeros(128)
        padded[:100] = 1.0

        assert len(magnitude) == 64
        np.testing.assert_allclose(magnitude, np.abs(np.fft.fft(padded))[:64], atol=1e-9)

    def test_empty_signal(self, fft):
        assert len(fft.compute_fft([])) == 0

    def test_frames_match_single_transform(self, fft):
        rng = np.random.default_rng(2)
        frames = rng.standard_normal((5, 32))
        batch = fft.compute_fft_frames(frames)

        assert batch.shape == (5, 16)
        for row, frame in zip(batch, frames):
            np.testing.assert_allclose(row, fft.compute_fft(frame), atol=1e-12)

    def test_power_spectrum(self, fft):
        signal = np.sin(2 * np.pi * 4 * np.arange(32) / 32)
        np.testing.assert_allclose(fft.compute_power_spectrum(signal), fft.compute_fft(signal) ** 2)


class TestSpectrogram:
    """Tests for framing and spectrogram computation"""

    def test_frame_count(self, fft):
        spectra = fft.frame_spectra(np.zeros(5000), 1024, 512)
        assert spectra.shape == ((5000 - 1024) // 512, 512)

    def test_short_signal(self, fft):
        assert fft.frame_spectra(np.zeros(1000), 1024, 512).shape == (0, 512)

    def test_short_buffer_spectrogram(self, fft, caplog):
        buffer = SampleBuffer(samples=np.zeros(1000), sample_rate=16000)
        with caplog.at_level(logging.WARNING):
            spectrogram = fft.compute_spectrogram(buffer)
        assert spectrogram.shape == (0, 512)
        assert "too short" in caplog.text

    def test_linear_spectrogram_normalized_per_frame(self, fft):
        t = np.arange(16000) / 16000
        buffer = SampleBuffer(samples=np.sin(2 * np.pi * 440 * t), sample_rate=16000)
        spectrogram = fft.compute_spectrogram(buffer)

        assert spectrogram.shape == (27, 512)
        np.testing.assert_allclose(spectrogram.max(axis=1), 1.0, atol=1e-6)
        peak_hz = np.argmax(spectrogram[0]) * 16000 / 2048
        assert abs(peak_hz - 440) < 16000 / 2048

    def test_db_and_mel_spectrogram(self):
        fft = FFTProcessor(FFTConfig(fft_size=1024, hop_size=256, num_mel_bins=40))
        rng = np.random.default_rng(3)
        buffer = SampleBuffer(samples=rng.standard_normal(8000) * 0.1, sample_rate=16000)

        db = fft.compute_spectrogram(buffer, use_db=True)
        assert db.min() >= 0.0 and db.max() <= 1.0

        mel = fft.compute_spectrogram(buffer, use_mel=True)
        assert mel.shape == ((8000 - 1024) // 256, 40)


class TestMelFilterbank:
    """Tests for the triangular mel filterbank"""

    def test_shape_and_peaks(self):
        filterbank = FFTProcessor.create_mel_filterbank(40, 2048, 16000, 0, 8000)

        assert filterbank.shape == (40, 1024)
        assert filterbank.min() >= 0.0
        np.testing.assert_allclose(filterbank.max(axis=1), 1.0)

    def test_centres_increase(self):
        filterbank = FFTProcessor.create_mel_filterbank(40, 2048, 16000, 0, 8000)
        centres = np.argmax(filterbank, axis=1)
        assert np.all(np.diff(centres) > 0)

    def test_degenerate_filters_are_zero(self):
        """Test that filters collapsing onto one bin stay all-zero"""
        filterbank = FFTProcessor.create_mel_filterbank(60, 64, 16000, 0, 8000)
        row_max = filterbank.max(axis=1)

        assert np.any(row_max == 0.0)
        assert np.all((row_max == 0.0) | np.isclose(row_max, 1.0))

    def test_area_normalization(self):
        plain = FFTProcessor.create_mel_filterbank(20, 1024, 16000, 100, 8000)
        scaled = FFTProcessor.create_mel_filterbank(20, 1024, 16000, 100, 8000, normalize_area=True)
        ratio = scaled[plain > 0] / plain[plain > 0]
        assert np.all(ratio > 0) and np.all(ratio <= 1.0)

    def test_apply_filterbank(self):
        filterbank = np.array([[1.0, 0.0, 0.0], [0.0, 0.5, 0.5]])
        np.testing.assert_allclose(
            FFTProcessor.apply_mel_filterbank(np.array([2.0, 4.0, 6.0]), filterbank), [2.0, 5.0]
        )


class TestSpectralDescriptors:
    """Tests for centroid, rolloff and flux"""

    def test_centroid(self):
        spectrum = np.zeros(100)
        spectrum[10] = 1.0
        assert FFTProcessor.compute_spectral_centroid(spectrum, 2000) == pytest.approx(100.0)
        assert FFTProcessor.compute_spectral_centroid(np.zeros(100), 2000) == 0.0

    def test_rolloff(self):
        spectrum = np.zeros(100)
        spectrum[5] = 1.0
        assert FFTProcessor.compute_spectral_rolloff(spectrum, 2000) == pytest.approx(50.0)

    def test_flux(self):
        a = np.array([1.0, 2.0, 3.0])
        assert FFTProcessor.compute_spectral_flux(a, a) == 0.0
        assert FFTProcessor.compute_spectral_flux(a, a + np.array([3.0, 4.0, 0.0])) == pytest.approx(5.0)

    def test_summarize_spectrum(self, fft):
        t = np.arange(16000) / 16000
        buffer = SampleBuffer(samples=np.sin(2 * np.pi * 1000 * t), sample_rate=16000)
        summary = fft.summarize_spectrum(buffer)

        assert summary['frames'] == 27
        assert 800 < summary['centroid_hz'] < 1500
        assert summary['flux'] >= 0.0

    def test_summarize_short_buffer(self, fft):
        buffer = SampleBuffer(samples=np.zeros(2000), sample_rate=16000)
        assert fft.summarize_spectrum(buffer)['frames'] == 0

"""FFT Module

Radix-2 Cooley-Tukey FFT, magnitude/power spectra, spectrograms, mel
filterbanks and per-frame spectral descriptors (centroid, rolloff, flux).

Transforms run on the last axis so a whole stack of frames is transformed in
one pass; every butterfly stage is applied to all blocks of all frames at
once.
"""

import logging
from functools import lru_cache
from typing import Dict, Optional

import numpy as np

from pronunciation_engine.analysis.math_utils import (
    hamming_window,
    hz_to_mel,
    mel_to_hz,
    next_power_of_two,
    reverse_bits,
)
from pronunciation_engine.config.config_loader import FFTConfig
from pronunciation_engine.models.buffers import SampleBuffer


logger = logging.getLogger(__name__)


@lru_cache(maxsize=16)
def _bit_reversal_permutation(n: int) -> np.ndarray:
    bits = n.bit_length() - 1
    permutation = np.array([reverse_bits(i, bits) for i in range(n)], dtype=np.intp)
    permutation.flags.writeable = False
    return permutation


def _radix2_transform(data: np.ndarray) -> np.ndarray:
    """In-order complex FFT along the last axis; length must be a power of two"""
    n = data.shape[-1]
    out = data[..., _bit_reversal_permutation(n)].astype(np.complex128)

    size = 2
    while size <= n:
        half = size // 2
        twiddle = np.exp(-2j * np.pi * np.arange(half) / size)
        blocks = out.reshape(out.shape[:-1] + (n // size, size))
        even = blocks[..., :half].copy()
        odd = blocks[..., half:] * twiddle
        blocks[..., :half] = even + odd
        blocks[..., half:] = even - odd
        size *= 2

    return out


class FFTProcessor:
    """Spectral analysis built on an iterative Cooley-Tukey FFT

    Attributes:
        config: Default spectrogram settings
    """

    def __init__(self, config: Optional[FFTConfig] = None):
        self.config = config or FFTConfig()

    def compute_fft(self, signal) -> np.ndarray:
        """Magnitude spectrum of a real signal

        The signal is zero-padded to the next power of two ``n``.

        Args:
            signal: Real-valued samples

        Returns:
            The first ``n / 2`` magnitudes
        """
        signal = np.asarray(signal, dtype=np.float64)
        if signal.size == 0:
            return np.zeros(0)
        n = next_power_of_two(len(signal))
        padded = np.zeros(n, dtype=np.float64)
        padded[:len(signal)] = signal
        return np.abs(_radix2_transform(padded)[:n // 2])

    def compute_fft_frames(self, frames: np.ndarray) -> np.ndarray:
        """Magnitude spectra of every row of a (n_frames, frame_len) matrix"""
        frames = np.asarray(frames, dtype=np.float64)
        if frames.ndim != 2 or frames.shape[1] == 0:
            return np.zeros((len(frames), 0))
        n = next_power_of_two(frames.shape[1])
        padded = np.zeros((frames.shape[0], n), dtype=np.float64)
        padded[:, :frames.shape[1]] = frames
        return np.abs(_radix2_transform(padded)[:, :n // 2])

    def compute_power_spectrum(self, signal) -> np.ndarray:
        magnitude = self.compute_fft(signal)
        return magnitude * magnitude

    def frame_spectra(self, samples: np.ndarray, fft_size: int, hop_size: int) -> np.ndarray:
        """Hamming-windowed magnitude spectra, one per hop

        Only frames lying entirely within the signal are used, and
        ``floor((len - fft_size) / hop_size)`` of them are produced.

        Returns:
            (n_frames, fft_size / 2) array, with zero rows if the signal is too short
        """
        samples = np.asarray(samples, dtype=np.float64)
        num_frames = max(0, (len(samples) - fft_size) // hop_size)
        if num_frames == 0:
            return np.zeros((0, fft_size // 2))

        starts = np.arange(num_frames) * hop_size
        frames = samples[starts[:, None] + np.arange(fft_size)]
        return self.compute_fft_frames(frames * hamming_window(fft_size))

    def compute_spectrogram(
        self,
        buffer: SampleBuffer,
        fft_size: Optional[int] = None,
        hop_size: Optional[int] = None,
        max_freq: Optional[float] = None,
        use_db: bool = False,
        use_mel: bool = False,
        num_mel_bins: Optional[int] = None,
    ) -> np.ndarray:
        """Time-frequency representation of a recording

        Args:
            buffer: Recording to analyze
            fft_size: Frame length (power of two)
            hop_size: Samples between frame starts
            max_freq: Highest frequency kept (Hz)
            use_db: Map 20*log10 magnitudes from a 60 dB floor onto [0, 1]
            use_mel: Warp frequencies with a triangular mel filterbank
            num_mel_bins: Number of mel filters when ``use_mel`` is set

        Returns:
            (n_frames, n_bins) array; linear mode normalizes each frame by its
            maximum. Empty (0, n_bins) when the buffer is shorter than one frame.
        """
        fft_size = fft_size or self.config.fft_size
        hop_size = hop_size or self.config.hop_size
        max_freq = max_freq if max_freq is not None else self.config.max_freq
        num_mel_bins = num_mel_bins or self.config.num_mel_bins

        sample_rate = buffer.sample_rate
        max_bin = min(int(np.floor(max_freq / sample_rate * (fft_size / 2))), fft_size // 2)
        num_bins = num_mel_bins if use_mel else max_bin

        spectra = self.frame_spectra(buffer.samples, fft_size, hop_size)
        if len(spectra) == 0:
            logger.warning(
                f"Audio too short for FFT size {fft_size}: {len(buffer.samples)} samples"
            )
            return np.zeros((0, num_bins))

        logger.debug(f"Computing spectrogram: {len(spectra)} frames, FFT size {fft_size}")

        if use_mel:
            filterbank = self.create_mel_filterbank(num_mel_bins, fft_size, sample_rate, 0.0, max_freq)
            values = self.apply_mel_filterbank(spectra, filterbank)
        else:
            values = spectra[:, :max_bin]

        if use_db:
            db = 20.0 * np.log10(values + 1e-10)
            return np.clip((db + 60.0) / 60.0, 0.0, 1.0)

        if values.shape[1] == 0:
            return values
        frame_max = values.max(axis=1, keepdims=True)
        return values / (frame_max + 1e-10)

    @staticmethod
    def create_mel_filterbank(
        num_filters: int,
        fft_size: int,
        sample_rate: int,
        min_freq: float = 0.0,
        max_freq: float = 8000.0,
        normalize_area: bool = False,
    ) -> np.ndarray:
        """Triangular filters evenly spaced on the mel scale

        Filter ``i`` rises over bins [start, center) and falls over
        [center, end), with bin edges at ``floor((fft_size + 1) * hz / sr)``.
        Filters whose edges collapse onto the same bin stay all-zero.

        Args:
            num_filters: Number of filters
            fft_size: FFT size the filters apply to
            sample_rate: Sample rate in Hz
            min_freq: Lower edge of the first filter (Hz)
            max_freq: Upper edge of the last filter (Hz)
            normalize_area: Scale each filter by 1 / ((end - start) / 2)

        Returns:
            (num_filters, fft_size / 2) weight matrix
        """
        num_bins = fft_size // 2
        mel_points = np.linspace(hz_to_mel(min_freq), hz_to_mel(max_freq), num_filters + 2)
        bin_points = np.floor((fft_size + 1) * mel_to_hz(mel_points) / sample_rate).astype(int)

        filterbank = np.zeros((num_filters, num_bins))
        for i in range(num_filters):
            start, center, end = bin_points[i], bin_points[i + 1], bin_points[i + 2]
            if center <= start or end <= center:
                continue

            norm = 1.0 / ((end - start) / 2.0) if normalize_area else 1.0

            rising = np.arange(start, center)
            falling = np.arange(center, end)
            rising = rising[(rising >= 0) & (rising < num_bins)]
            falling = falling[(falling >= 0) & (falling < num_bins)]

            filterbank[i, rising] = (rising - start) / (center - start) * norm
            filterbank[i, falling] = (end - falling) / (end - center) * norm

        return filterbank

    @staticmethod
    def apply_mel_filterbank(spectrum: np.ndarray, filterbank: np.ndarray) -> np.ndarray:
        """Filter energies for one spectrum or a stack of spectra"""
        spectrum = np.asarray(spectrum, dtype=np.float64)
        width = min(spectrum.shape[-1], filterbank.shape[1])
        return spectrum[..., :width] @ filterbank[:, :width].T

    @staticmethod
    def compute_spectral_centroid(spectrum: np.ndarray, sample_rate: int) -> float:
        """Magnitude-weighted mean frequency in Hz (0 for a silent spectrum)"""
        spectrum = np.asarray(spectrum, dtype=np.float64)
        total = spectrum.sum()
        if len(spectrum) == 0 or total <= 0:
            return 0.0
        freqs = np.arange(len(spectrum)) * sample_rate / (2.0 * len(spectrum))
        return float(np.dot(freqs, spectrum) / total)

    @staticmethod
    def compute_spectral_rolloff(spectrum: np.ndarray, sample_rate: int, threshold: float = 0.85) -> float:
        """Frequency below which ``threshold`` of the spectral energy lies"""
        spectrum = np.asarray(spectrum, dtype=np.float64)
        if len(spectrum) == 0:
            return 0.0
        bin_size = sample_rate / (2.0 * len(spectrum))
        cumulative = np.cumsum(spectrum * spectrum)
        reached = np.nonzero(cumulative >= cumulative[-1] * threshold)[0]
        index = reached[0] if len(reached) else len(spectrum) - 1
        return float(index * bin_size)

    @staticmethod
    def compute_spectral_flux(spectrum1: np.ndarray, spectrum2: np.ndarray) -> float:
        """Euclidean distance between consecutive spectra"""
        n = min(len(spectrum1), len(spectrum2))
        diff = np.asarray(spectrum2[:n], dtype=np.float64) - np.asarray(spectrum1[:n], dtype=np.float64)
        return float(np.sqrt(np.dot(diff, diff)))

    def summarize_spectrum(self, buffer: SampleBuffer) -> Dict[str, float]:
        """Mean spectral centroid, rolloff and flux of a recording

        Returns zeros with ``frames == 0`` when the buffer is shorter than one frame.
        """
        spectra = self.frame_spectra(buffer.samples, self.config.fft_size, self.config.hop_size)
        if len(spectra) == 0:
            return {'frames': 0, 'centroid_hz': 0.0, 'rolloff_hz': 0.0, 'flux': 0.0}

        sr = buffer.sample_rate
        centroids = [self.compute_spectral_centroid(s, sr) for s in spectra]
        rolloffs = [self.compute_spectral_rolloff(s, sr) for s in spectra]
        fluxes = [self.compute_spectral_flux(a, b) for a, b in zip(spectra[:-1], spectra[1:])]

        return {
            'frames': len(spectra),
            'centroid_hz': float(np.mean(centroids)),
            'rolloff_hz': float(np.mean(rolloffs)),
            'flux': float(np.mean(fluxes)) if fluxes else 0.0,
        }

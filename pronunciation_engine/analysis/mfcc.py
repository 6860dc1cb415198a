"""MFCC Analysis Module

Mel-frequency cepstral coefficients tuned for short isolated-word
utterances: long frames (2048) for frequency resolution and a short hop
(128) for fine temporal resolution of transitions.
"""

import logging
from typing import Optional

import numpy as np

from pronunciation_engine.analysis.fft import FFTProcessor
from pronunciation_engine.analysis.math_utils import hamming_window, pre_emphasis
from pronunciation_engine.config.config_loader import MFCCConfig
from pronunciation_engine.models.buffers import SampleBuffer
from pronunciation_engine.models.frames import MFCCFrame
from pronunciation_engine.models.tracks import MFCCTrack


logger = logging.getLogger(__name__)


def dct_matrix(num_coeffs: int, num_filters: int) -> np.ndarray:
    """DCT-II basis scaled by sqrt(2 / num_filters)"""
    n = np.arange(num_coeffs)[:, None]
    m = np.arange(num_filters)[None, :]
    return np.sqrt(2.0 / num_filters) * np.cos(np.pi * n * (m + 0.5) / num_filters)


def lifter_weights(num_coeffs: int, lifter: int) -> np.ndarray:
    """Sinusoidal liftering 1 + (L / 2) sin(pi n / L)"""
    n = np.arange(num_coeffs)
    if lifter <= 0:
        return np.ones(num_coeffs)
    return 1.0 + (lifter / 2.0) * np.sin(np.pi * n / lifter)


def _frozen_row(row: np.ndarray) -> np.ndarray:
    coeffs = row.copy()
    coeffs.flags.writeable = False
    return coeffs


class MFCCAnalyzer:
    """Extracts MFCC tracks with deltas and cepstral mean normalization

    Attributes:
        config: Frame layout, filterbank and liftering settings
        fft: Spectral front end
    """

    def __init__(self, config: Optional[MFCCConfig] = None, fft: Optional[FFTProcessor] = None):
        self.config = config or MFCCConfig()
        self.fft = fft or FFTProcessor()

    def extract_static(self, buffer: SampleBuffer) -> np.ndarray:
        """Liftered MFCCs before mean normalization

        Pre-emphasis runs over the whole signal so each frame's first sample
        is emphasized against the sample preceding the frame.

        Returns:
            (n_frames, num_coeffs) matrix
        """
        cfg = self.config
        samples = buffer.samples
        sr = buffer.sample_rate
        frame_size = cfg.frame_size

        starts = np.arange(0, max(0, len(samples) - frame_size), cfg.hop_size)
        if len(starts) == 0:
            return np.zeros((0, cfg.num_coeffs))

        emphasized = pre_emphasis(samples, cfg.pre_emphasis_alpha)
        frames = emphasized[starts[:, None] + np.arange(frame_size)] * hamming_window(frame_size)

        magnitude = self.fft.compute_fft_frames(frames)
        power = magnitude * magnitude

        high_freq = min(cfg.high_freq, sr / 2.0)
        filterbank = FFTProcessor.create_mel_filterbank(
            cfg.num_filters, frame_size, sr, cfg.low_freq, high_freq, normalize_area=True
        )
        log_energies = np.log(FFTProcessor.apply_mel_filterbank(power, filterbank) + 1e-10)

        coeffs = log_energies @ dct_matrix(cfg.num_coeffs, cfg.num_filters).T
        return coeffs * lifter_weights(cfg.num_coeffs, cfg.lifter)

    def extract_mfcc(self, buffer: SampleBuffer) -> MFCCTrack:
        """Extract the normalized MFCC track with deltas and delta-deltas

        Coefficient 0 (overall log energy) is left unnormalized; the means
        removed from coefficients 1..n-1 are kept in ``original_means``.
        """
        cfg = self.config
        static = self.extract_static(buffer)

        if len(static):
            means = static.mean(axis=0)
            static = static.copy()
            static[:, 1:] -= means[1:]
        else:
            logger.warning(
                f"Audio too short for MFCC frame size {cfg.frame_size}: {len(buffer.samples)} samples"
            )
            means = np.zeros(cfg.num_coeffs)

        times = np.arange(len(static)) * cfg.hop_size / buffer.sample_rate
        frames = tuple(MFCCFrame(time=float(t), coeffs=_frozen_row(row)) for t, row in zip(times, static))

        deltas = self.extract_deltas(static, cfg.delta_window)
        delta_deltas = self.extract_deltas(deltas, cfg.delta_window)

        logger.info(f"Extracted {len(frames)} MFCC frames")
        return MFCCTrack(frames=frames, deltas=deltas, delta_deltas=delta_deltas, original_means=means)

    @staticmethod
    def extract_deltas(coeffs: np.ndarray, window: int = 2) -> np.ndarray:
        """Regression deltas over +/- ``window`` frames, clamped at the edges

        delta[t] = sum_j j * (c[t + j] - c[t - j]) / (2 * sum_j j^2)

        Args:
            coeffs: (n_frames, n_coeffs) matrix
            window: Half-width of the regression window

        Returns:
            Matrix of the same shape; all zeros when there are fewer than
            ``2 * window + 1`` frames
        """
        coeffs = np.asarray(coeffs, dtype=np.float64)
        n = len(coeffs)
        if n < 2 * window + 1:
            logger.warning(f"Not enough frames for delta extraction: {n} < {2 * window + 1}")
            return np.zeros_like(coeffs)

        index = np.arange(n)
        deltas = np.zeros_like(coeffs)
        norm = 0.0
        for j in range(1, window + 1):
            nxt = coeffs[np.minimum(n - 1, index + j)]
            prev = coeffs[np.maximum(0, index - j)]
            deltas += j * (nxt - prev)
            norm += 2 * j * j

        return deltas / norm

    def extract_delta_deltas(self, coeffs: np.ndarray, window: int = 2) -> np.ndarray:
        return self.extract_deltas(self.extract_deltas(coeffs, window), window)

    @staticmethod
    def extract_full_features(track: MFCCTrack) -> np.ndarray:
        """Static, delta and delta-delta coefficients side by side (39-dim by default)"""
        return np.hstack([track.coefficients, track.deltas, track.delta_deltas])

    @staticmethod
    def cosine_distance(mfcc1, mfcc2) -> float:
        """1 - cosine similarity over the common prefix (0 identical, 2 opposite)"""
        n = min(len(mfcc1), len(mfcc2))
        a = np.asarray(mfcc1[:n], dtype=np.float64)
        b = np.asarray(mfcc2[:n], dtype=np.float64)
        similarity = np.dot(a, b) / (np.sqrt(np.dot(a, a) * np.dot(b, b)) + 1e-10)
        return float(1.0 - similarity)

    @staticmethod
    def euclidean_distance(mfcc1, mfcc2) -> float:
        n = min(len(mfcc1), len(mfcc2))
        diff = np.asarray(mfcc1[:n], dtype=np.float64) - np.asarray(mfcc2[:n], dtype=np.float64)
        return float(np.sqrt(np.dot(diff, diff)))

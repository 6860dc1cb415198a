"""Intensity and Stress Analysis Module

RMS intensity, zero-crossing rate and spectral tilt tracks, plus stress
detection: intensity peaks serve as syllable-stress proxies and are matched
between a native and a user recording.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from pronunciation_engine.analysis.fft import FFTProcessor
from pronunciation_engine.analysis.math_utils import hamming_window
from pronunciation_engine.config.config_loader import IntensityConfig, StressConfig
from pronunciation_engine.models.buffers import SampleBuffer
from pronunciation_engine.models.frames import IntensityFrame, SpectralTiltFrame, StressPeak, ZCRFrame
from pronunciation_engine.models.results import StressComparison


logger = logging.getLogger(__name__)


def _frame_matrix(samples: np.ndarray, frame_size: int, hop_size: int) -> Tuple[np.ndarray, np.ndarray]:
    """Frames starting every hop while a full frame fits, with their start indices"""
    starts = np.arange(0, max(0, len(samples) - frame_size), hop_size)
    if len(starts) == 0:
        return starts, np.zeros((0, frame_size))
    return starts, samples[starts[:, None] + np.arange(frame_size)]


class IntensityAnalyzer:
    """Extracts loudness and voice-quality tracks

    Attributes:
        config: Frame layouts for each track
        fft: Spectral front end used for spectral tilt
    """

    def __init__(self, config: Optional[IntensityConfig] = None, fft: Optional[FFTProcessor] = None):
        self.config = config or IntensityConfig()
        self.fft = fft or FFTProcessor()

    def extract_intensity(self, buffer: SampleBuffer) -> Tuple[IntensityFrame, ...]:
        """RMS intensity per frame"""
        starts, frames = _frame_matrix(buffer.samples, self.config.frame_size, self.config.hop_size)
        rms = np.sqrt(np.mean(frames * frames, axis=1)) if len(frames) else np.zeros(0)
        logger.debug(f"Extracted {len(starts)} intensity frames")
        return tuple(
            IntensityFrame(time=float(s) / buffer.sample_rate, rms_intensity=float(v))
            for s, v in zip(starts, rms)
        )

    def extract_zcr(self, buffer: SampleBuffer) -> Tuple[ZCRFrame, ...]:
        """Zero-crossing rate per frame (crossings / frame length)"""
        starts, frames = _frame_matrix(buffer.samples, self.config.frame_size, self.config.hop_size)
        if len(frames) == 0:
            return ()
        signs = frames >= 0
        crossings = np.count_nonzero(signs[:, 1:] != signs[:, :-1], axis=1)
        rates = crossings / self.config.frame_size
        return tuple(
            ZCRFrame(time=float(s) / buffer.sample_rate, zcr=float(z))
            for s, z in zip(starts, rates)
        )

    def extract_spectral_tilt(self, buffer: SampleBuffer) -> Tuple[SpectralTiltFrame, ...]:
        """Low-band to high-band magnitude ratio per frame

        The split sits at ``tilt_split`` of the spectrum; higher values mean
        more low-frequency energy, as in vowels.
        """
        frame_size = self.config.tilt_frame_size
        starts, frames = _frame_matrix(buffer.samples, frame_size, self.config.hop_size)
        if len(frames) == 0:
            return ()

        spectra = self.fft.compute_fft_frames(frames * hamming_window(frame_size))
        cutoff = int(np.floor(spectra.shape[1] * self.config.tilt_split))
        low = spectra[:, :cutoff].sum(axis=1)
        high = spectra[:, cutoff:].sum(axis=1)
        tilt = low / (high + 1e-10)

        return tuple(
            SpectralTiltFrame(time=float(s) / buffer.sample_rate, tilt=float(t))
            for s, t in zip(starts, tilt)
        )

    def extract_envelope(self, samples, window_size: Optional[int] = None,
                         hop_size: Optional[int] = None) -> np.ndarray:
        """Short-window RMS envelope (480/240 samples by default)"""
        window_size = window_size or self.config.envelope_window
        hop_size = hop_size or self.config.envelope_hop
        _, frames = _frame_matrix(np.asarray(samples, dtype=np.float64), window_size, hop_size)
        if len(frames) == 0:
            return np.zeros(0)
        return np.sqrt(np.mean(frames * frames, axis=1))


class StressAnalyzer:
    """Detects and compares syllable stress patterns

    Attributes:
        config: Peak height, matching tolerances and penalties
    """

    def __init__(self, config: Optional[StressConfig] = None):
        self.config = config or StressConfig()

    def find_peaks(self, track: Sequence[IntensityFrame], min_height: Optional[float] = None) -> List[StressPeak]:
        """Local intensity maxima that may mark stressed syllables

        A peak is strictly greater than its three neighbours on each side,
        lies at least five frames from either end and exceeds ``min_height``
        of the track maximum.

        Args:
            track: Intensity frames
            min_height: Relative height threshold (defaults to config)

        Returns:
            Peaks with heights relative to the track maximum; empty for
            tracks shorter than 10 frames or all-zero tracks
        """
        min_height = self.config.min_height if min_height is None else min_height
        values = np.array([f.rms_intensity for f in track], dtype=np.float64)

        if len(values) < 10:
            logger.warning(f"Too few frames for peak detection: {len(values)}")
            return []

        max_val = values.max()
        if max_val == 0:
            logger.warning("Zero intensity detected, no stress peaks")
            return []

        peaks = []
        for i in range(5, len(values) - 5):
            if values[i] <= max_val * min_height:
                continue
            neighbours = np.concatenate((values[i - 3:i], values[i + 1:i + 4]))
            if np.all(values[i] > neighbours):
                peaks.append(StressPeak(time=track[i].time, height=float(values[i] / max_val), index=i))

        logger.debug(f"Found {len(peaks)} intensity peaks")
        return peaks

    def compare_peak_patterns(
        self,
        native_peaks: Sequence[StressPeak],
        user_peaks: Sequence[StressPeak],
        native_duration: float,
        user_duration: float,
    ) -> StressComparison:
        """Score how well the user's stress peaks follow the native ones

        Position score: ``max(0, 100 - 200 * |dpos|)`` where ``pos`` is the
        time of each side's strongest peak divided by its duration.

        Pattern score: each native peak matches if some user peak lies
        within the time tolerance with a relative height difference below
        the height tolerance; ``matched / len(native) * 100`` minus a penalty
        per peak-count difference, clamped to [0, 100].

        Returns 50/50 with a reason when either side has no peaks.
        """
        cfg = self.config
        if not native_peaks or not user_peaks:
            return StressComparison(
                score=50,
                position_score=50,
                matched=0,
                native_peak_count=len(native_peaks),
                user_peak_count=len(user_peaks),
                reason="Insufficient stress peaks",
            )

        native_strongest = max(native_peaks, key=lambda p: p.height)
        user_strongest = max(user_peaks, key=lambda p: p.height)
        native_pos = native_strongest.time / native_duration if native_duration > 0 else 0.0
        user_pos = user_strongest.time / user_duration if user_duration > 0 else 0.0
        pos_diff = abs(native_pos - user_pos)
        position_score = max(0.0, 100.0 - pos_diff * 200.0)

        tolerance = max(cfg.min_tolerance, native_duration * cfg.tolerance_ratio)
        matched = 0
        for native in native_peaks:
            for user in user_peaks:
                if abs(native.time - user.time) < tolerance and \
                        abs(native.height - user.height) < cfg.height_tolerance:
                    matched += 1
                    break

        count_penalty = abs(len(native_peaks) - len(user_peaks)) * cfg.count_penalty
        score = float(np.clip(matched / len(native_peaks) * 100.0 - count_penalty, 0.0, 100.0))

        logger.debug(
            f"Stress pattern: {matched}/{len(native_peaks)} peaks matched, "
            f"position score: {position_score:.0f}%"
        )

        return StressComparison(
            score=round(score),
            position_score=round(position_score),
            matched=matched,
            native_peak_count=len(native_peaks),
            user_peak_count=len(user_peaks),
            details={
                'native_stress_position': native_pos,
                'user_stress_position': user_pos,
                'position_diff': pos_diff,
                'tolerance': tolerance,
            },
        )

    @staticmethod
    def track_duration(track: Sequence[IntensityFrame]) -> float:
        """Length of a track as frame count times frame step"""
        if len(track) >= 2:
            return len(track) * (track[1].time - track[0].time)
        if track:
            return track[-1].time or 1.0
        return 1.0

    def compare_stress_pattern(
        self,
        native: Sequence[IntensityFrame],
        user: Sequence[IntensityFrame],
    ) -> StressComparison:
        """Detect peaks on both intensity tracks and compare them"""
        return self.compare_peak_patterns(
            self.find_peaks(native),
            self.find_peaks(user),
            self.track_duration(native),
            self.track_duration(user),
        )

    @staticmethod
    def detect_anomalies(track: Sequence[IntensityFrame]) -> Dict[str, Any]:
        """Intensity statistics with spike and drop counts

        A spike (drop) lies more than two standard deviations above (below)
        the mean of its two neighbours on each side.
        """
        values = np.array([f.rms_intensity for f in track], dtype=np.float64)
        if len(values) == 0:
            return {'mean': 0.0, 'std': 0.0, 'spikes': 0, 'drops': 0, 'dynamic_range': 0.0}

        mean = float(values.mean())
        std = float(values.std())
        spikes = 0
        drops = 0
        for i in range(2, len(values) - 2):
            local = (values[i - 2] + values[i - 1] + values[i + 1] + values[i + 2]) / 4
            if values[i] > local + 2 * std:
                spikes += 1
            if values[i] < local - 2 * std:
                drops += 1

        return {
            'mean': mean,
            'std': std,
            'spikes': spikes,
            'drops': drops,
            'dynamic_range': float(values.max() / (values.min() + 1e-10)),
        }

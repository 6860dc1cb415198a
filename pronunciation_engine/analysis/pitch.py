"""Pitch Analysis Module

Frame-wise pitch estimation with normalized autocorrelation, followed by a
cleaning pipeline that fixes octave errors before any smoothing happens.
Smoothing first would blur a genuine octave jump into an intermediate value
that can no longer be corrected.
"""

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from pronunciation_engine.analysis.math_utils import median_filter
from pronunciation_engine.config.config_loader import PitchConfig
from pronunciation_engine.models.buffers import SampleBuffer
from pronunciation_engine.models.frames import PitchFrame
from pronunciation_engine.models.tracks import PitchTrack


logger = logging.getLogger(__name__)


class PitchAnalyzer:
    """Extracts and cleans the pitch (F0) contour of a recording

    Attributes:
        config: Frame layout, pitch range and cleaning thresholds
    """

    def __init__(self, config: Optional[PitchConfig] = None):
        self.config = config or PitchConfig()

    def estimate_pitch(self, frame: np.ndarray, sample_rate: int) -> Tuple[float, float]:
        """Estimate the pitch of a single frame

        Searches lags in ``[floor(sr / max_pitch), floor(sr / min_pitch))`` for
        the maximum of ``corr(lag) / sqrt(e1 * e2 + 1e-10)``, where e1 and e2
        are the energies of the two overlapping segments.

        Args:
            frame: Audio samples
            sample_rate: Sample rate in Hz

        Returns:
            (pitch_hz, confidence); pitch is 0 when the best normalized
            correlation is below the voicing threshold
        """
        frame = np.asarray(frame, dtype=np.float64)
        n = len(frame)
        min_lag = max(1, int(np.floor(sample_rate / self.config.max_pitch)))
        max_lag = min(n, int(np.floor(sample_rate / self.config.min_pitch)))
        if min_lag >= max_lag:
            return 0.0, 0.0

        squared = np.cumsum(frame * frame)
        total = squared[-1]

        best_corr = -np.inf
        best_lag = 0
        for lag in range(min_lag, max_lag):
            corr = float(np.dot(frame[:n - lag], frame[lag:]))
            energy1 = squared[n - lag - 1]
            energy2 = total - squared[lag - 1]
            corr /= np.sqrt(energy1 * energy2 + 1e-10)
            if corr > best_corr:
                best_corr = corr
                best_lag = lag

        confidence = float(np.clip(best_corr, 0.0, 1.0))
        if best_corr < self.config.voicing_threshold:
            return 0.0, confidence
        return sample_rate / best_lag, confidence

    def _octave_fix(self, value: float, reference: float) -> float:
        """Halve or double ``value`` if that brings it closer to ``reference``"""
        half = value / 2
        double = value * 2
        current_dist = abs(value - reference)

        if abs(half - reference) < current_dist and half >= self.config.min_pitch:
            return half
        if abs(double - reference) < current_dist and double <= self.config.max_pitch:
            return double
        return value

    def _interpolate_outliers(self, values: np.ndarray, label: str) -> None:
        high = self.config.octave_ratio_high
        low = self.config.octave_ratio_low
        for i in range(1, len(values)):
            if values[i] == 0 or values[i - 1] == 0:
                continue

            ratio = values[i] / values[i - 1]
            if ratio > high or ratio < low:
                if i < len(values) - 1 and values[i + 1] > 0:
                    values[i] = (values[i - 1] + values[i + 1]) / 2
                    logger.debug(f"{label} interpolation at frame {i}: now {values[i]:.1f} Hz")
                else:
                    values[i] = values[i - 1]

    def clean_pitch_track(self, values) -> np.ndarray:
        """Remove octave errors and outliers, then smooth

        Passes, in order:
            1. Octave check of the first frame against its forward neighbour
            2. Octave correction of interior frames against their voiced neighbours
            3. Single-step outlier interpolation
            4. Median smoothing over voiced values (unvoiced zeros stay zero)
            5. A final outlier interpolation pass

        Args:
            values: Raw pitch values, 0 for unvoiced frames

        Returns:
            Cleaned pitch values
        """
        cleaned = np.array(values, dtype=np.float64)
        high = self.config.octave_ratio_high
        low = self.config.octave_ratio_low

        if len(cleaned) > 2 and cleaned[0] > 0:
            forward = cleaned[1] if cleaned[1] > 0 else cleaned[2]
            if forward > 0:
                fixed = self._octave_fix(cleaned[0], forward)
                if fixed != cleaned[0]:
                    logger.debug(f"Octave correction at frame 0: {cleaned[0]:.1f} -> {fixed:.1f} Hz")
                    cleaned[0] = fixed

        for i in range(1, len(cleaned) - 1):
            if cleaned[i] == 0:
                continue

            prev = cleaned[i - 1] if cleaned[i - 1] > 0 else cleaned[i]
            nxt = cleaned[i + 1] if cleaned[i + 1] > 0 else cleaned[i]
            context = max(prev, nxt)

            if cleaned[i] > context * high or cleaned[i] < context * low:
                fixed = self._octave_fix(cleaned[i], context)
                if fixed != cleaned[i]:
                    logger.debug(f"Octave correction at frame {i}: {cleaned[i]:.1f} -> {fixed:.1f} Hz")
                    cleaned[i] = fixed

        self._interpolate_outliers(cleaned, "Outlier")

        smoothed = median_filter(cleaned, self.config.median_window, skip_zeros=True)

        self._interpolate_outliers(smoothed, "Final")
        return smoothed

    def extract_pitch(self, buffer: SampleBuffer) -> PitchTrack:
        """Extract the cleaned pitch track of a recording

        Frames start every ``hop_size`` samples while a full frame fits;
        each frame's time is its start.
        """
        samples = buffer.samples
        sr = buffer.sample_rate
        frame_size = self.config.frame_size

        times: List[float] = []
        raw: List[float] = []
        confidences: List[float] = []
        for start in range(0, len(samples) - frame_size, self.config.hop_size):
            pitch, confidence = self.estimate_pitch(samples[start:start + frame_size], sr)
            times.append(start / sr)
            raw.append(pitch)
            confidences.append(confidence)

        if not raw:
            logger.warning(
                f"Audio too short for pitch frame size {frame_size}: {len(samples)} samples"
            )

        cleaned = self.clean_pitch_track(raw)
        frames = tuple(
            PitchFrame(time=t, pitch_hz=float(p), confidence=c)
            for t, p, c in zip(times, cleaned, confidences)
        )

        voiced = cleaned[cleaned > 0]
        summary = {
            'total_frames': len(frames),
            'voiced_frames': int(len(voiced)),
            'unvoiced_frames': int(len(frames) - len(voiced)),
            'mean_pitch': float(voiced.mean()) if len(voiced) else 0.0,
            'min_pitch': float(voiced.min()) if len(voiced) else 0.0,
            'max_pitch': float(voiced.max()) if len(voiced) else 0.0,
        }

        logger.info(f"Extracted {len(frames)} pitch frames ({summary['voiced_frames']} voiced)")
        return PitchTrack(frames=frames, summary=summary)

    @staticmethod
    def detect_pitch_artifacts(track: PitchTrack) -> Dict[str, float]:
        """Count pitch jumps and unvoiced gaps

        A jump is a frame-to-frame ratio above 1.3 or below 0.77 between
        voiced frames. A gap is a run of unvoiced frames followed by a voiced one.
        """
        values = track.values
        jumps = 0
        gap_lengths: List[int] = []
        current_gap = 0

        for i in range(1, len(values)):
            prev, curr = values[i - 1], values[i]
            if curr == 0:
                current_gap += 1
            elif current_gap > 0:
                gap_lengths.append(current_gap)
                current_gap = 0

            if prev > 0 and curr > 0:
                ratio = curr / prev
                if ratio > 1.3 or ratio < 0.77:
                    jumps += 1

        return {
            'jumps': jumps,
            'gaps': len(gap_lengths),
            'avg_gap_length': float(np.mean(gap_lengths)) if gap_lengths else 0.0,
            'max_gap_length': max(gap_lengths) if gap_lengths else 0,
        }

    @staticmethod
    def find_pitch_landmarks(track: PitchTrack) -> Dict[str, List[Dict[str, float]]]:
        """Local peaks and valleys of the voiced contour

        A voiced value is a peak when it exceeds the mean of its two neighbours
        on each side by 5%, and a valley when it falls 5% below. Indices refer
        to the voiced-only sequence.
        """
        pitches = track.voiced_values()
        peaks: List[Dict[str, float]] = []
        valleys: List[Dict[str, float]] = []
        if len(pitches) < 5:
            return {'peaks': peaks, 'valleys': valleys}

        for i in range(2, len(pitches) - 2):
            neighbours = (pitches[i - 2] + pitches[i - 1] + pitches[i + 1] + pitches[i + 2]) / 4
            if pitches[i] > neighbours * 1.05:
                peaks.append({'index': i, 'value': float(pitches[i])})
            elif pitches[i] < neighbours * 0.95:
                valleys.append({'index': i, 'value': float(pitches[i])})

        return {'peaks': peaks, 'valleys': valleys}

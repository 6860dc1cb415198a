"""Formant Extraction Module

Linear predictive coding (LPC) formant tracking. Each voiced frame is
modelled as an all-pole filter; the poles near the unit circle are the vocal
tract resonances. Poles come from the roots of the LPC polynomial, with LPC
spectrum peak-picking as the fallback when too few usable roots survive.

Per frame:
    Hamming window -> energy / zero-crossing gate -> pre-emphasis ->
    autocorrelation -> Levinson-Durbin -> polynomial roots (or spectral
    peaks) -> F1/F2/F3 assignment -> inertia against the previous voiced frame

The whole track is median-smoothed afterwards. Frames that cannot produce a
plausible F1 < F2 < F3 are marked unvoiced and hold the last valid values.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from pronunciation_engine.analysis.math_utils import (
    Complex,
    compute_rms,
    complex_abs,
    complex_angle,
    hamming_window,
    median_filter,
    pre_emphasis,
    zero_crossing_rate,
)
from pronunciation_engine.analysis.polynomial import find_roots
from pronunciation_engine.config.config_loader import FormantConfig
from pronunciation_engine.models.buffers import SampleBuffer
from pronunciation_engine.models.enums import FrameFallback
from pronunciation_engine.models.frames import FormantFrame, formants_plausible
from pronunciation_engine.models.tracks import FormantTrack


logger = logging.getLogger(__name__)

DEFAULT_FORMANTS = (500.0, 1500.0, 2500.0)
SPECTRAL_PEAKS = "spectral_peaks"
PEAK_THRESHOLDS = (0.05, 0.02, 0.01, 0.005, 0.001)
MIN_PEAK_SPACING = 120.0

Formants = Tuple[float, float, float]


class FormantCandidate(NamedTuple):
    """A resonance candidate from a root or a spectral peak"""
    freq: float
    bandwidth: float
    magnitude: float


@dataclass(frozen=True)
class LPCResult:
    """Levinson-Durbin output

    Attributes:
        lpc: Coefficients [1, a1, ..., ap] of A(z) = 1 + a1 z^-1 + ... + ap z^-p
        error: Final prediction error power
        reflection_coeffs: Reflection (PARCOR) coefficients k1..kp
    """
    lpc: np.ndarray
    error: float
    reflection_coeffs: np.ndarray


class FormantExtractor:
    """Extracts F1/F2/F3 tracks with LPC

    Attributes:
        config: Frame layout, LPC order, gating and root-finding settings
    """

    def __init__(self, config: Optional[FormantConfig] = None):
        self.config = config or FormantConfig()

    # ------------------------------------------------------------------
    # LPC
    # ------------------------------------------------------------------

    @staticmethod
    def autocorrelation(signal, max_lag: int) -> np.ndarray:
        """Biased autocorrelation (sum divided by n) for lags 0..max_lag

        The biased estimate keeps the Toeplitz system positive definite, so the
        predictor polynomial has all its roots inside the unit circle.
        """
        signal = np.asarray(signal, dtype=np.float64)
        n = len(signal)
        result = np.zeros(max_lag + 1)
        for lag in range(min(max_lag, n - 1) + 1):
            result[lag] = np.dot(signal[:n - lag], signal[lag:]) / n
        return result

    @staticmethod
    def levinson_durbin(autocorr, order: int) -> LPCResult:
        """Solve the Yule-Walker equations in O(p^2)

        A silent frame (zero error power) yields non-finite coefficients,
        which the caller rejects.
        """
        r = np.asarray(autocorr, dtype=np.float64)
        lpc = np.zeros(order + 1)
        lpc[0] = 1.0
        reflection = np.zeros(order)
        error = r[0]

        with np.errstate(all='ignore'):
            for i in range(1, order + 1):
                acc = r[i] + np.dot(lpc[1:i], r[i - 1:0:-1])
                k = -acc / error if error != 0 else np.nan
                reflection[i - 1] = k

                previous = lpc.copy()
                lpc[i] = k
                lpc[1:i] = previous[1:i] + k * previous[i - 1:0:-1]

                error = error * (1.0 - k * k)

        return LPCResult(lpc=lpc, error=float(error), reflection_coeffs=reflection)

    def lpc_is_valid(self, lpc: np.ndarray) -> bool:
        return bool(np.all(np.isfinite(lpc)) and np.all(np.abs(lpc) <= self.config.max_lpc_coefficient))

    @staticmethod
    def compute_lpc_spectrum(lpc, num_points: int, sample_rate: int) -> np.ndarray:
        """Power response 1 / |A(e^jw)|^2 at ``num_points`` frequencies up to Nyquist"""
        lpc = np.asarray(lpc, dtype=np.float64)
        omega = np.pi * np.arange(num_points) / num_points
        phases = np.outer(omega, np.arange(len(lpc)))
        real = np.cos(phases) @ lpc
        imag = np.sin(phases) @ lpc
        return 1.0 / (real * real + imag * imag + 1e-10)

    @staticmethod
    def estimate_bandwidth(spectrum: np.ndarray, peak_index: int, freq_per_bin: float) -> float:
        """Half-power (-3 dB) bandwidth of a spectral peak, at least 50 Hz"""
        if peak_index <= 0 or peak_index >= len(spectrum) - 1:
            return 100.0

        half_power = spectrum[peak_index] / np.sqrt(2.0)
        left = peak_index
        while left > 0 and spectrum[left] > half_power:
            left -= 1
        right = peak_index
        while right < len(spectrum) - 1 and spectrum[right] > half_power:
            right += 1

        return max(50.0, (right - left) * freq_per_bin)

    @classmethod
    def find_spectral_peaks(
        cls,
        spectrum: np.ndarray,
        sample_rate: int,
        min_freq: float = 90.0,
        max_freq: float = 5000.0,
        num_formants: int = 4,
    ) -> List[FormantCandidate]:
        """Formant candidates from the peaks of an LPC spectrum

        Local maxima are collected over passes with decreasing thresholds
        (relative to the strongest bin) and refined with log-domain parabolic
        interpolation. If fewer than three turn up, the strongest remaining
        bins are used. Candidates closer than 120 Hz to a stronger one are
        dropped.

        Returns:
            Candidates sorted by frequency
        """
        spectrum = np.asarray(spectrum, dtype=np.float64)
        num_points = len(spectrum)
        freq_per_bin = sample_rate / (2.0 * num_points)
        min_bin = int(np.ceil(min_freq / freq_per_bin))
        max_bin = min(int(np.floor(max_freq / freq_per_bin)), num_points)
        if max_bin - min_bin < 3:
            return []

        global_max = float(spectrum[min_bin:max_bin].max())
        peaks: List[FormantCandidate] = []
        visited = np.zeros(num_points, dtype=bool)

        for threshold in PEAK_THRESHOLDS:
            if len(peaks) >= num_formants * 3:
                break
            for i in range(min_bin + 1, max_bin - 1):
                if visited[i] or spectrum[i] < global_max * threshold:
                    continue
                if not (spectrum[i] > spectrum[i - 1] and spectrum[i] > spectrum[i + 1]):
                    continue

                y1, y2, y3 = np.log(spectrum[i - 1:i + 2] + 1e-10)
                offset = 0.0
                denom = y1 - 2 * y2 + y3
                if abs(denom) > 1e-10:
                    offset = float(np.clip(0.5 * (y1 - y3) / denom, -0.5, 0.5))

                peaks.append(FormantCandidate(
                    freq=(i + offset) * freq_per_bin,
                    bandwidth=cls.estimate_bandwidth(spectrum, i, freq_per_bin),
                    magnitude=float(spectrum[i]),
                ))
                visited[max(0, i - 3):i + 4] = True

        if len(peaks) < 3:
            strongest = sorted(
                (i for i in range(min_bin, max_bin) if not visited[i]),
                key=lambda i: spectrum[i],
                reverse=True,
            )[:10]
            for i in strongest:
                if len(peaks) >= num_formants * 3:
                    break
                freq = i * freq_per_bin
                if all(abs(freq - p.freq) >= 100.0 for p in peaks):
                    peaks.append(FormantCandidate(freq=freq, bandwidth=100.0, magnitude=float(spectrum[i])))

        selected: List[FormantCandidate] = []
        for peak in sorted(peaks, key=lambda p: p.magnitude, reverse=True):
            if len(selected) >= num_formants * 2:
                break
            if all(abs(peak.freq - s.freq) >= MIN_PEAK_SPACING for s in selected):
                selected.append(peak)

        return sorted(selected, key=lambda p: p.freq)

    def candidates_from_roots(self, roots: Sequence[Complex], sample_rate: int) -> List[FormantCandidate]:
        """Map z = r e^(i theta) to (|theta| sr / 2pi, -ln(r) sr / pi) and filter

        Discards near-zero and near-unit-circle roots, the lower half plane
        (each resonance appears once), and candidates outside the frequency
        or bandwidth limits.
        """
        cfg = self.config
        candidates = []
        for root in roots:
            r = complex_abs(root)
            theta = complex_angle(root)
            if r <= cfg.min_root_magnitude or r >= cfg.max_root_magnitude:
                continue
            if theta <= cfg.min_root_angle:
                continue

            frequency = abs(theta) * sample_rate / (2 * np.pi)
            bandwidth = -np.log(r) * sample_rate / np.pi
            if frequency < cfg.min_frequency or frequency > cfg.max_frequency:
                continue
            if bandwidth >= cfg.max_bandwidth:
                continue

            candidates.append(FormantCandidate(freq=frequency, bandwidth=bandwidth, magnitude=r))

        return sorted(candidates, key=lambda c: c.freq)

    # ------------------------------------------------------------------
    # Formant assignment and smoothing
    # ------------------------------------------------------------------

    @staticmethod
    def assign_formants(candidates: Sequence[FormantCandidate]) -> Optional[Formants]:
        """Pick F1/F2/F3 from frequency-sorted candidates

        Returns:
            (f1, f2, f3) satisfying the voiced-frame invariant, or None
        """
        freqs = [c.freq for c in candidates]
        if len(freqs) < 2:
            return None

        def first(predicate) -> Optional[float]:
            return next((f for f in freqs if predicate(f)), None)

        f1 = first(lambda f: 200 <= f <= 1200)
        if f1 is None:
            f1 = first(lambda f: 150 <= f <= 1500)

        if f1 is not None:
            f2 = first(lambda f: f > f1 + 150 and 500 <= f <= 3500)
            if f2 is None:
                f2 = first(lambda f: f > f1 + 100 and 500 <= f <= 3500)
            if f2 is not None:
                f3 = first(lambda f: f > f2 + 150 and f <= 4500)
                if f3 is None:
                    f3 = min(f2 * 1.4 + 600, 4000.0)
                if formants_plausible(f1, f2, f3):
                    return f1, f2, f3

        # Last resort: the lowest candidates above the F0 region
        usable = [f for f in freqs if f >= 150]
        if len(usable) >= 2:
            f1, f2 = usable[0], usable[1]
            f3 = usable[2] if len(usable) >= 3 else f2 * 1.5 + 500
            if formants_plausible(f1, f2, f3):
                return f1, f2, f3

        return None

    def apply_inertia(self, current: Formants, previous: Optional[FormantFrame]) -> Formants:
        """Blend large jumps with the previous voiced frame

        A formant moving more than its jump limit becomes 70% previous and
        30% current. The blend is dropped if it would break the voiced-frame
        invariant.
        """
        if previous is None or not previous.voiced:
            return current

        cfg = self.config
        blended = []
        for value, prev, limit in zip(
            current,
            (previous.f1, previous.f2, previous.f3),
            (cfg.f1_jump, cfg.f2_jump, cfg.f3_jump),
        ):
            if abs(value - prev) > limit:
                value = prev * cfg.inertia + value * (1 - cfg.inertia)
            blended.append(value)

        if formants_plausible(*blended):
            return blended[0], blended[1], blended[2]
        return current

    def _smooth_track(self, frames: List[FormantFrame]) -> List[FormantFrame]:
        """Median-smooth F1/F2/F3 across the track

        Voiced frames whose smoothed triple breaks the invariant keep their
        unsmoothed values; unvoiced frames keep holding the previous frame.
        """
        if not frames:
            return frames

        window = self.config.median_window
        f1 = median_filter([f.f1 for f in frames], window)
        f2 = median_filter([f.f2 for f in frames], window)
        f3 = median_filter([f.f3 for f in frames], window)

        smoothed: List[FormantFrame] = []
        reverted = 0
        for i, frame in enumerate(frames):
            if frame.voiced:
                values = (float(f1[i]), float(f2[i]), float(f3[i]))
                if not formants_plausible(*values):
                    values = (frame.f1, frame.f2, frame.f3)
                    reverted += 1
            elif smoothed:
                prev = smoothed[-1]
                values = (prev.f1, prev.f2, prev.f3)
            else:
                values = (frame.f1, frame.f2, frame.f3)

            smoothed.append(FormantFrame(time=frame.time, f1=values[0], f2=values[1], f3=values[2],
                                         voiced=frame.voiced))

        if reverted:
            logger.debug(f"Median smoothing reverted on {reverted} voiced frames")
        return smoothed

    # ------------------------------------------------------------------
    # Track extraction
    # ------------------------------------------------------------------

    def _energy_threshold(self, samples: np.ndarray) -> float:
        """Adaptive voicing threshold from every 4th frame's windowed RMS"""
        frame_size = self.config.frame_size
        window = hamming_window(frame_size)
        energies = [
            compute_rms(samples[start:start + frame_size] * window)
            for start in range(0, len(samples) - frame_size, self.config.hop_size * 4)
        ]
        avg_energy = float(np.mean(energies)) if energies else 0.0
        return max(avg_energy * self.config.energy_threshold_ratio, self.config.energy_floor)

    def analyze_frame(self, frame: np.ndarray, sample_rate: int) -> Tuple[Optional[Formants], Optional[str]]:
        """Formants of one voiced frame

        Args:
            frame: Hamming-windowed samples (before pre-emphasis)
            sample_rate: Sample rate in Hz

        Returns:
            ((f1, f2, f3), method) on success, or (None, fallback reason)
        """
        cfg = self.config
        emphasized = pre_emphasis(frame, cfg.pre_emphasis_alpha)
        lpc = self.levinson_durbin(self.autocorrelation(emphasized, cfg.lpc_order), cfg.lpc_order).lpc

        if not self.lpc_is_valid(lpc):
            return None, FrameFallback.INVALID_LPC.value

        solution = find_roots(
            lpc,
            max_iterations=cfg.durand_kerner_iterations,
            tolerance=cfg.durand_kerner_tolerance,
            laguerre_iterations=cfg.laguerre_iterations,
        )
        candidates = self.candidates_from_roots(solution.roots, sample_rate)
        method = solution.method.value

        if len(candidates) < 3:
            spectrum = self.compute_lpc_spectrum(lpc, cfg.spectrum_points, sample_rate)
            candidates = self.find_spectral_peaks(spectrum, sample_rate, cfg.min_frequency, 5000.0, 8)
            method = SPECTRAL_PEAKS

        formants = self.assign_formants(candidates)
        if formants is None:
            return None, FrameFallback.NO_VALID_FORMANTS.value
        return formants, method

    def extract_formants(self, buffer: SampleBuffer) -> FormantTrack:
        """Extract the formant track of a recording

        Args:
            buffer: Recording to analyze

        Returns:
            FormantTrack with one frame per hop, the fallback reason of every
            frame that was not measured, and a summary
        """
        cfg = self.config
        samples = buffer.samples
        sr = buffer.sample_rate
        window = hamming_window(cfg.frame_size)
        threshold = self._energy_threshold(samples)

        frames: List[FormantFrame] = []
        reasons: Dict[int, str] = {}
        method_counts: Dict[str, int] = {}
        last_valid: Formants = DEFAULT_FORMANTS
        previous: Optional[FormantFrame] = None

        for index, start in enumerate(range(0, len(samples) - cfg.frame_size, cfg.hop_size)):
            time = start / sr
            windowed = samples[start:start + cfg.frame_size] * window

            energy = compute_rms(windowed)
            zcr = zero_crossing_rate(windowed)
            if energy > threshold and zcr < cfg.max_voiced_zcr:
                formants, outcome = self.analyze_frame(windowed, sr)
            else:
                formants, outcome = None, FrameFallback.UNVOICED.value

            if formants is None:
                reasons[index] = outcome
                frame = FormantFrame(time=time, f1=last_valid[0], f2=last_valid[1], f3=last_valid[2],
                                     voiced=False)
            else:
                method_counts[outcome] = method_counts.get(outcome, 0) + 1
                f1, f2, f3 = self.apply_inertia(formants, previous)
                last_valid = (f1, f2, f3)
                frame = FormantFrame(time=time, f1=f1, f2=f2, f3=f3, voiced=True)

            frames.append(frame)
            previous = frame

        if not frames:
            logger.warning(
                f"Audio too short for formant frame size {cfg.frame_size}: {len(samples)} samples"
            )

        frames = self._smooth_track(frames)
        voiced = [f for f in frames if f.voiced]

        summary = {
            'total_frames': len(frames),
            'voiced_frames': len(voiced),
            'unvoiced_frames': len(frames) - len(voiced),
            'voiced_percentage': 100.0 * len(voiced) / len(frames) if frames else 0.0,
            'mean_f1': float(np.mean([f.f1 for f in voiced])) if voiced else 0.0,
            'mean_f2': float(np.mean([f.f2 for f in voiced])) if voiced else 0.0,
            'mean_f3': float(np.mean([f.f3 for f in voiced])) if voiced else 0.0,
            'method_counts': method_counts,
        }

        logger.info(
            f"Extracted {len(frames)} formant frames "
            f"({len(voiced)} voiced, {len(frames) - len(voiced)} unvoiced)"
        )
        return FormantTrack(frames=tuple(frames), summary=summary, frame_reasons=reasons)

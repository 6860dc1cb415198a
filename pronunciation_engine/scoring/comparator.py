"""Pronunciation Comparator

Extracts every feature track from a native and a user recording, aligns the
paired tracks and scores their similarity per dimension:

    pitch           Intonation contour shape (mean-normalized)
    formants        F1/F2/F3 trajectories of voiced frames
    mfcc            Phonetic quality (static 70%, delta 30%)
    envelope        Loudness contour correlation
    duration        Overall timing
    stress_position Position of the strongest stress peak
    stress          Syllable stress pattern
    quality         Voice quality (zero-crossing rate, spectral tilt)

Tracks are aligned with DTW (tempo-invariant) or compared point-by-point
depending on ``scoring.use_dtw``. Dimensions without enough data score a
neutral 50 and record the reason in the report's ``fallbacks`` list.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from pronunciation_engine.alignment.dtw import DTW, AlignmentError
from pronunciation_engine.analysis.fft import FFTProcessor
from pronunciation_engine.analysis.formants import FormantExtractor
from pronunciation_engine.analysis.intensity import IntensityAnalyzer, StressAnalyzer
from pronunciation_engine.analysis.math_utils import pearson_correlation, resample_array
from pronunciation_engine.analysis.mfcc import MFCCAnalyzer
from pronunciation_engine.analysis.pitch import PitchAnalyzer
from pronunciation_engine.config.config_loader import AnalysisConfig
from pronunciation_engine.models.buffers import InvalidAudioError, SampleBuffer
from pronunciation_engine.models.frames import FormantFrame
from pronunciation_engine.models.results import ComparisonResult, DimensionScore, StressComparison
from pronunciation_engine.models.tracks import FeatureSet, FormantTrack, MFCCTrack, PitchTrack


logger = logging.getLogger(__name__)

DIMENSIONS = (
    'pitch',
    'formants',
    'mfcc',
    'envelope',
    'duration',
    'stress_position',
    'stress',
    'quality',
)

NEUTRAL_SCORE = 50.0
MFCC_DISTANCE_SCALE = 8.0
PROBLEMATIC_COEFF_THRESHOLD = 5.0


def _clamp_score(value: float) -> float:
    return float(min(100.0, max(0.0, value)))


def _neutral(reason: str, **details) -> DimensionScore:
    details['reason'] = reason
    return DimensionScore(score=NEUTRAL_SCORE, details=details, fallback_reason=reason)


def generate_feedback(score: float, breakdown: Dict[str, float]) -> str:
    """Short, rule-based feedback for a learner

    Every dimension below 70 adds one hint; the opening phrase depends on the
    overall score.

    Args:
        score: Overall score [0, 100]
        breakdown: Dimension name -> score

    Returns:
        Feedback text
    """
    issues = []

    if breakdown.get('pitch', 100) < 70:
        issues.append("Pay attention to pitch patterns and intonation")
    if breakdown.get('formants', 100) < 70:
        issues.append("Shape your vowels more like the native speaker")
    if breakdown.get('mfcc', 100) < 70:
        issues.append("Focus on vowel and consonant quality")
    if breakdown.get('envelope', 100) < 70:
        issues.append("Practice the loudness contour, your amplitude pattern differs")
    duration = breakdown.get('duration', 100)
    if duration < 50:
        issues.append("Significant timing difference, match the rhythm and pace")
    elif duration < 70:
        issues.append("Adjust your speaking speed to match the native timing")
    if breakdown.get('stress_position', 100) < 70:
        issues.append("Move the main stress to the correct position in the word")

    if score >= 85:
        opening = "Excellent pronunciation!"
    elif score >= 70:
        opening = "Great job!"
    elif score >= 55:
        opening = "Good effort!"
    else:
        opening = "Keep practicing!"

    if not issues:
        return opening
    return f"{opening} {'. '.join(issues)}."


class PronunciationComparator:
    """Multi-dimensional pronunciation scoring

    The comparator holds no state between calls; ``compare`` is
    deterministic for identical buffers and configuration.

    Attributes:
        config: Complete analysis configuration
        fft: Spectral front end shared by the analyzers
        pitch_analyzer: Pitch tracker
        formant_extractor: LPC formant tracker
        mfcc_analyzer: MFCC extractor
        intensity_analyzer: Intensity, ZCR, tilt and envelope extractor
        stress_analyzer: Stress peak detector and matcher
    """

    def __init__(self, config: Optional[AnalysisConfig] = None):
        self.config = config or AnalysisConfig()
        self.fft = FFTProcessor(self.config.fft)
        self.pitch_analyzer = PitchAnalyzer(self.config.pitch)
        self.formant_extractor = FormantExtractor(self.config.formants)
        self.mfcc_analyzer = MFCCAnalyzer(self.config.mfcc, self.fft)
        self.intensity_analyzer = IntensityAnalyzer(self.config.intensity, self.fft)
        self.stress_analyzer = StressAnalyzer(self.config.stress)

        logger.info(
            f"PronunciationComparator initialized with use_dtw={self.config.scoring.use_dtw}, "
            f"dtw_window={self.config.dtw.window}"
        )

    @property
    def use_dtw(self) -> bool:
        return self.config.scoring.use_dtw

    # ------------------------------------------------------------------
    # Feature extraction
    # ------------------------------------------------------------------

    def analyze(self, buffer: SampleBuffer) -> FeatureSet:
        """Extract every feature track from one recording

        Args:
            buffer: Decoded mono recording

        Returns:
            FeatureSet with all tracks

        Raises:
            InvalidAudioError: If the buffer does not exceed one analysis frame
        """
        min_samples = self.config.fft.fft_size
        if len(buffer) <= min_samples:
            raise InvalidAudioError(
                f"Audio too short for analysis: {len(buffer)} samples, need more than {min_samples}"
            )

        intensity = self.intensity_analyzer.extract_intensity(buffer)
        features = FeatureSet(
            duration=buffer.duration,
            sample_rate=buffer.sample_rate,
            pitch=self.pitch_analyzer.extract_pitch(buffer),
            formants=self.formant_extractor.extract_formants(buffer),
            mfcc=self.mfcc_analyzer.extract_mfcc(buffer),
            intensity=intensity,
            zcr=self.intensity_analyzer.extract_zcr(buffer),
            spectral_tilt=self.intensity_analyzer.extract_spectral_tilt(buffer),
            envelope=self.intensity_analyzer.extract_envelope(buffer.samples),
            stress_peaks=tuple(self.stress_analyzer.find_peaks(intensity)),
            spectrum=self.fft.summarize_spectrum(buffer),
        )
        logger.debug(f"Analyzed {buffer.duration:.3f}s recording at {buffer.sample_rate} Hz")
        return features

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def compare(self, native: SampleBuffer, user: SampleBuffer) -> ComparisonResult:
        """Score a user recording against a native reference

        Args:
            native: Native-speaker recording
            user: Learner recording

        Returns:
            ComparisonResult with overall score, breakdown, report and feedback

        Raises:
            InvalidAudioError: If either buffer is too short to analyze
        """
        logger.info("Starting comparison analysis")
        native_features = self.analyze(native)
        user_features = self.analyze(user)

        stress = self.stress_analyzer.compare_peak_patterns(
            native_features.stress_peaks,
            user_features.stress_peaks,
            self.stress_analyzer.track_duration(native_features.intensity),
            self.stress_analyzer.track_duration(user_features.intensity),
        )
        static_mfcc, delta_mfcc = self.compare_mfcc_tracks(native_features.mfcc, user_features.mfcc)

        dimensions = {
            'pitch': self.compare_pitch(native_features.pitch, user_features.pitch),
            'formants': self.compare_formants(native_features.formants, user_features.formants),
            'mfcc': self._combine_mfcc(static_mfcc, delta_mfcc),
            'envelope': self.compare_envelope(native_features.envelope, user_features.envelope),
            'duration': self.compare_duration(native_features.duration, user_features.duration),
            'stress_position': self._stress_dimension(stress, position=True),
            'stress': self._stress_dimension(stress, position=False),
            'quality': self.compare_quality(native_features, user_features),
        }

        raw_scores = {name: dim.score for name, dim in dimensions.items()}
        weights = self._compute_weights(self.config.scoring.weights)
        weighted_scores = {name: raw_scores[name] * weights[name] for name in DIMENSIONS}
        overall = _clamp_score(round(sum(weighted_scores.values())))
        breakdown = {name: float(round(score)) for name, score in raw_scores.items()}

        logger.info(
            "Scores - " + " ".join(f"{name}:{score:.0f}" for name, score in raw_scores.items())
            + f" overall:{overall:.0f}"
        )

        report = self._build_report(
            native_features, user_features, dimensions, static_mfcc, delta_mfcc, stress,
            weights, raw_scores, weighted_scores, overall,
        )

        return ComparisonResult(
            overall_score=overall,
            breakdown=breakdown,
            detailed_report=report,
            feedback=generate_feedback(overall, raw_scores),
            native_features=native_features,
            user_features=user_features,
        )

    async def compare_async(self, native: SampleBuffer, user: SampleBuffer) -> ComparisonResult:
        """Run ``compare`` in a worker thread so the event loop stays responsive"""
        return await asyncio.to_thread(self.compare, native, user)

    def _compute_weights(self, weights: Dict[str, float]) -> Dict[str, float]:
        """Normalize dimension weights to sum to 1.0

        Dimensions missing from ``weights`` get weight 0; equal weights are
        used when nothing positive remains.
        """
        raw = {name: max(0.0, float(weights.get(name, 0.0))) for name in DIMENSIONS}
        total = sum(raw.values())
        if total > 0:
            return {name: value / total for name, value in raw.items()}
        return {name: 1.0 / len(DIMENSIONS) for name in DIMENSIONS}

    # ------------------------------------------------------------------
    # Dimensions
    # ------------------------------------------------------------------

    def compare_pitch(self, native: PitchTrack, user: PitchTrack) -> DimensionScore:
        """Compare intonation contours normalized by each speaker's mean pitch

        DTW mode aligns the voiced contours: ``100 * (1 - 2 * nd)``.
        Point-by-point mode walks the common prefix; a frame voiced on both
        sides scores ``1 - min(|dn - du| / dn, 1)``, a frame voiced on one
        side only scores 0, and the score is the mean over frames voiced on
        either side.
        """
        native_voiced = native.voiced_values()
        user_voiced = user.voiced_values()
        if len(native_voiced) == 0 or len(user_voiced) == 0:
            return _neutral(
                "Insufficient voiced frames",
                native_voiced=int(len(native_voiced)),
                user_voiced=int(len(user_voiced)),
            )

        native_mean = float(native_voiced.mean())
        user_mean = float(user_voiced.mean())
        details: Dict[str, Any] = {
            'native_mean_hz': native_mean,
            'user_mean_hz': user_mean,
            'pitch_difference_pct': (user_mean - native_mean) / native_mean * 100.0,
            'native_voiced': int(len(native_voiced)),
            'user_voiced': int(len(user_voiced)),
            'total_points': max(len(native), len(user)),
        }

        fallback_reason = None
        if self.use_dtw:
            result = DTW.compute_1d(native_voiced / native_mean, user_voiced / user_mean, self.config.dtw.window)
            if np.isfinite(result.normalized_distance):
                score = _clamp_score(100.0 * (1.0 - 2.0 * result.normalized_distance))
                details.update(method='dtw', normalized_distance=result.normalized_distance)
                return DimensionScore(score=score, details=details)
            fallback_reason = "DTW found no alignment path"
            logger.warning("Pitch DTW found no alignment path, falling back to point-by-point")

        n = min(len(native), len(user))
        native_norm = native.values[:n] / native_mean
        user_norm = user.values[:n] / user_mean
        either = (native_norm > 0) | (user_norm > 0)
        both = (native_norm > 0) & (user_norm > 0)
        if not either.any():
            return _neutral("No overlapping voiced frames", **details)

        similarity = np.zeros(n)
        rel = np.abs(native_norm[both] - user_norm[both]) / native_norm[both]
        similarity[both] = 1.0 - np.minimum(rel, 1.0)
        score = _clamp_score(100.0 * similarity[either].mean())
        details.update(method='point_by_point', compared_frames=int(either.sum()))
        return DimensionScore(score=score, details=details, fallback_reason=fallback_reason)

    def compare_formants(self, native: FormantTrack, user: FormantTrack) -> DimensionScore:
        """Compare F1/F2/F3 trajectories of voiced frames

        DTW mode scores the relative error ``nd / mean(native F1, F2, F3)`` as
        ``100 * (1 - 5 * rel)``. Point-by-point mode scores ``100 * (1 - e)``
        with ``e`` the mean relative error over the common voiced prefix. A
        failed alignment falls back to point-by-point.
        """
        native_voiced = native.voiced_frames()
        user_voiced = user.voiced_frames()
        if not native_voiced or not user_voiced:
            return _neutral(
                "No voiced frames with valid formants",
                native_voiced=len(native_voiced),
                user_voiced=len(user_voiced),
                total_frames=min(len(native), len(user)),
            )

        native_avg = self._mean_formants(native_voiced)
        user_avg = self._mean_formants(user_voiced)
        details: Dict[str, Any] = {
            'native_voiced': len(native_voiced),
            'user_voiced': len(user_voiced),
            'total_frames': min(len(native), len(user)),
            'native_mean': native_avg,
            'user_mean': user_avg,
        }

        if self.use_dtw:
            try:
                result = DTW.compute_multi_dim(
                    native_voiced, user_voiced, self.config.dtw.formant_weights, self.config.dtw.window
                )
            except AlignmentError as e:
                logger.warning(f"Formant DTW failed, falling back to point-by-point: {e}")
                score, avg_error = self._formant_point_error(native_voiced, user_voiced)
                details.update(method='point_by_point', avg_error=avg_error)
                return DimensionScore(score=score, details=details, fallback_reason=f"DTW failed: {e}")

            avg_formant = sum(native_avg.values()) / 3.0
            relative_error = result.normalized_distance / avg_formant
            score = _clamp_score(100.0 * (1.0 - 5.0 * relative_error))
            details.update(
                method='dtw',
                normalized_distance=result.normalized_distance,
                relative_error=relative_error,
            )
            return DimensionScore(score=score, details=details)

        score, avg_error = self._formant_point_error(native_voiced, user_voiced)
        details.update(method='point_by_point', avg_error=avg_error)
        return DimensionScore(score=score, details=details)

    @staticmethod
    def _mean_formants(frames: Sequence[FormantFrame]) -> Dict[str, float]:
        return {
            'f1': float(np.mean([f.f1 for f in frames])),
            'f2': float(np.mean([f.f2 for f in frames])),
            'f3': float(np.mean([f.f3 for f in frames])),
        }

    @staticmethod
    def _formant_point_error(native: Sequence[FormantFrame], user: Sequence[FormantFrame]) -> Tuple[float, float]:
        n = min(len(native), len(user))
        a = np.array([[f.f1, f.f2, f.f3] for f in native[:n]])
        b = np.array([[f.f1, f.f2, f.f3] for f in user[:n]])
        avg_error = float(np.mean(np.abs(a - b) / a))
        return _clamp_score(100.0 * (1.0 - avg_error)), avg_error

    def compare_mfcc_tracks(self, native: MFCCTrack, user: MFCCTrack) -> Tuple[DimensionScore, DimensionScore]:
        """Static and delta MFCC comparisons"""
        static = self.compare_mfcc(
            native.coefficients, user.coefficients, native.original_means, user.original_means
        )
        delta = self.compare_mfcc(native.deltas, user.deltas)
        return static, delta

    def compare_mfcc(self, native: np.ndarray, user: np.ndarray,
                     native_means: Optional[np.ndarray] = None,
                     user_means: Optional[np.ndarray] = None) -> DimensionScore:
        """Compare cepstral sequences, skipping coefficient 0 (energy)

        Frames are compared by Euclidean distance with coefficient ``c``
        weighted by ``1 / sqrt(c)``. DTW mode uses an adaptive band of
        ``max(window, ratio * max(n, m))`` and reports the mean cosine
        distance along the recovered path. Both modes score
        ``100 * (1 - d / 8)``.

        Args:
            native: (n, num_coeffs) native coefficients
            user: (m, num_coeffs) user coefficients
            native_means: Means removed by normalization, used for the
                per-coefficient statistics when given
            user_means: Same for the user track
        """
        native = np.asarray(native, dtype=np.float64)
        user = np.asarray(user, dtype=np.float64)
        if native.ndim != 2 or user.ndim != 2 or len(native) == 0 or len(user) == 0 or native.shape[1] < 2:
            return _neutral("Insufficient MFCC data")

        n, m = len(native), len(user)
        num_coeffs = min(native.shape[1], user.shape[1])
        coeff_stats = self._coefficient_stats(native[:, :num_coeffs], user[:, :num_coeffs],
                                              native_means, user_means)
        problematic = sorted(
            (s for s in coeff_stats if s['mean_diff'] > PROBLEMATIC_COEFF_THRESHOLD),
            key=lambda s: s['mean_diff'],
            reverse=True,
        )[:3]

        # sqrt of the weighted squared distance equals the plain Euclidean
        # distance of vectors pre-scaled by c^-1/4
        scale = np.arange(1, num_coeffs) ** -0.25
        native_w = native[:, 1:num_coeffs] * scale
        user_w = user[:, 1:num_coeffs] * scale

        details: Dict[str, Any] = {
            'native_frames': n,
            'user_frames': m,
            'coefficient_stats': coeff_stats,
            'problematic_coeffs': problematic,
        }

        fallback_reason = None
        if self.use_dtw:
            window = max(self.config.dtw.window, int(np.floor(max(n, m) * self.config.dtw.mfcc_window_ratio)))
            try:
                result = DTW.compute_custom(native_w, user_w, MFCCAnalyzer.euclidean_distance, window)
                path = DTW.recover_path(result.cost_matrix)
            except AlignmentError as e:
                logger.warning(f"MFCC DTW failed, falling back to point-by-point: {e}")
                fallback_reason = f"DTW failed: {e}"
            else:
                cosine = [
                    MFCCAnalyzer.cosine_distance(native[i, 1:num_coeffs], user[j, 1:num_coeffs])
                    for i, j in path
                ]
                score = _clamp_score(100.0 * (1.0 - result.normalized_distance / MFCC_DISTANCE_SCALE))
                details.update(
                    method='dtw_weighted',
                    window=window,
                    normalized_distance=result.normalized_distance,
                    path_length=len(path),
                    mean_cosine_distance=float(np.mean(cosine)),
                )
                return DimensionScore(score=score, details=details)

        target = max(n, m)
        native_idx = np.minimum(n - 1, (np.arange(target) * n) // target)
        user_idx = np.minimum(m - 1, (np.arange(target) * m) // target)
        diff = native_w[native_idx] - user_w[user_idx]
        avg_dist = float(np.mean(np.sqrt(np.sum(diff * diff, axis=1))))
        score = _clamp_score(100.0 * (1.0 - avg_dist / MFCC_DISTANCE_SCALE))
        details.update(method='interpolated_weighted', mean_distance=avg_dist)
        return DimensionScore(score=score, details=details, fallback_reason=fallback_reason)

    @staticmethod
    def _coefficient_stats(native: np.ndarray, user: np.ndarray,
                           native_means: Optional[np.ndarray],
                           user_means: Optional[np.ndarray]) -> List[Dict[str, float]]:
        native_mean = native.mean(axis=0)
        user_mean = user.mean(axis=0)
        if native_means is not None and user_means is not None:
            native_mean = native_mean + np.asarray(native_means)[:len(native_mean)]
            user_mean = user_mean + np.asarray(user_means)[:len(user_mean)]
        native_std = native.std(axis=0)
        user_std = user.std(axis=0)
        return [
            {
                'coeff': c,
                'native_mean': float(native_mean[c]),
                'user_mean': float(user_mean[c]),
                'mean_diff': float(abs(native_mean[c] - user_mean[c])),
                'native_std': float(native_std[c]),
                'user_std': float(user_std[c]),
            }
            for c in range(1, native.shape[1])
        ]

    def _combine_mfcc(self, static: DimensionScore, delta: DimensionScore) -> DimensionScore:
        weight = self.config.scoring.mfcc_static_weight
        score = _clamp_score(static.score * weight + delta.score * (1.0 - weight))
        reasons = [r for r in (static.fallback_reason, delta.fallback_reason) if r]
        return DimensionScore(
            score=score,
            details={
                'static_score': static.score,
                'delta_score': delta.score,
                'static_weight': weight,
            },
            fallback_reason='; '.join(reasons) or None,
        )

    def compare_envelope(self, native, user) -> DimensionScore:
        """Pearson correlation of max-normalized envelopes resampled to a common length

        Envelopes shorter than 5 points, or flat after resampling, score 50.
        """
        native = np.asarray(native, dtype=np.float64)
        user = np.asarray(user, dtype=np.float64)
        if len(native) < 5 or len(user) < 5:
            return _neutral("Insufficient envelope data", native_length=len(native), user_length=len(user))

        points = self.config.scoring.envelope_points
        native_res = resample_array(native, points)
        user_res = resample_array(user, points)
        if np.ptp(native_res) == 0 or np.ptp(user_res) == 0:
            return _neutral("Flat envelope", native_length=len(native), user_length=len(user))

        native_norm = native_res / (native_res.max() or 1.0)
        user_norm = user_res / (user_res.max() or 1.0)
        correlation = pearson_correlation(native_norm, user_norm)
        return DimensionScore(
            score=_clamp_score(correlation * 100.0),
            details={
                'correlation': correlation,
                'native_length': len(native),
                'user_length': len(user),
            },
        )

    @staticmethod
    def compare_duration(native_duration: float, user_duration: float) -> DimensionScore:
        """``100 - |1 - user / native| * 100``, floored at 0"""
        ratio = user_duration / native_duration
        deviation = abs(1.0 - ratio)
        return DimensionScore(
            score=_clamp_score(100.0 - deviation * 100.0),
            details={
                'native_duration': native_duration,
                'user_duration': user_duration,
                'difference': abs(native_duration - user_duration),
                'ratio': ratio,
                'deviation': deviation,
            },
        )

    @staticmethod
    def _stress_dimension(stress: StressComparison, position: bool) -> DimensionScore:
        details = {
            'native_peaks': stress.native_peak_count,
            'user_peaks': stress.user_peak_count,
            'matched': stress.matched,
        }
        details.update(stress.details)
        return DimensionScore(
            score=float(stress.position_score if position else stress.score),
            details=details,
            fallback_reason=stress.reason,
        )

    def compare_quality(self, native: FeatureSet, user: FeatureSet) -> DimensionScore:
        """Mean of zero-crossing-rate and spectral-tilt similarity

        DTW mode: ``100 * (1 - 20 * nd)`` for ZCR and ``100 * (1 - 10 * nd)``
        for tilt. Point-by-point mode: mean of ``1 / (1 + |d|)`` over the
        common prefix.
        """
        native_zcr = np.array([f.zcr for f in native.zcr])
        user_zcr = np.array([f.zcr for f in user.zcr])
        native_tilt = np.array([f.tilt for f in native.spectral_tilt])
        user_tilt = np.array([f.tilt for f in user.spectral_tilt])

        if min(len(native_zcr), len(user_zcr), len(native_tilt), len(user_tilt)) == 0:
            return _neutral("Insufficient voice quality data")

        fallback_reason = None
        if self.use_dtw:
            window = self.config.dtw.window
            zcr_result = DTW.compute_1d(native_zcr, user_zcr, window)
            tilt_result = DTW.compute_1d(native_tilt, user_tilt, window)
            if not (np.isfinite(zcr_result.normalized_distance) and np.isfinite(tilt_result.normalized_distance)):
                logger.warning("Voice quality DTW found no alignment path, falling back to point-by-point")
                fallback_reason = "DTW found no alignment path"

        if self.use_dtw and fallback_reason is None:
            zcr_score = _clamp_score(100.0 * (1.0 - zcr_result.normalized_distance * 20.0))
            tilt_score = _clamp_score(100.0 * (1.0 - tilt_result.normalized_distance * 10.0))
            method = 'dtw'
        else:
            zcr_score = self._track_similarity(native_zcr, user_zcr)
            tilt_score = self._track_similarity(native_tilt, user_tilt)
            method = 'point_by_point'

        return DimensionScore(
            score=_clamp_score((zcr_score + tilt_score) / 2.0),
            details={
                'zcr_score': zcr_score,
                'tilt_score': tilt_score,
                'avg_native_zcr': float(native_zcr.mean()),
                'avg_user_zcr': float(user_zcr.mean()),
                'method': method,
            },
            fallback_reason=fallback_reason,
        )

    @staticmethod
    def _track_similarity(track1: np.ndarray, track2: np.ndarray) -> float:
        n = min(len(track1), len(track2))
        return _clamp_score(100.0 * float(np.mean(1.0 / (1.0 + np.abs(track1[:n] - track2[:n])))))

    # ------------------------------------------------------------------
    # Report
    # ------------------------------------------------------------------

    @staticmethod
    def _frame_fallbacks(track: FormantTrack) -> Dict[str, Any]:
        """Per reason, how many formant frames fell back and which ones"""
        frames: Dict[str, List[int]] = {}
        for index in sorted(track.frame_reasons):
            frames.setdefault(track.frame_reasons[index], []).append(int(index))
        return {
            'counts': {reason: len(indices) for reason, indices in frames.items()},
            'frames': frames,
        }

    @staticmethod
    def _unvoiced_frames(track: PitchTrack) -> List[int]:
        return [index for index, frame in enumerate(track.frames) if frame.pitch_hz <= 0]

    def _build_report(
        self,
        native: FeatureSet,
        user: FeatureSet,
        dimensions: Dict[str, DimensionScore],
        static_mfcc: DimensionScore,
        delta_mfcc: DimensionScore,
        stress: StressComparison,
        weights: Dict[str, float],
        raw_scores: Dict[str, float],
        weighted_scores: Dict[str, float],
        overall: float,
    ) -> Dict[str, Any]:
        fallbacks = [
            {'dimension': name, 'reason': dim.fallback_reason}
            for name, dim in dimensions.items()
            if dim.fallback_reason
        ]

        return {
            'metadata': {
                'native_duration': native.duration,
                'user_duration': user.duration,
                'native_sample_rate': native.sample_rate,
                'user_sample_rate': user.sample_rate,
                'use_dtw': self.use_dtw,
            },
            'pitch': {
                'native': dict(native.pitch.summary),
                'user': dict(user.pitch.summary),
                'comparison': dimensions['pitch'].details,
                'artifacts': {
                    'native': PitchAnalyzer.detect_pitch_artifacts(native.pitch),
                    'user': PitchAnalyzer.detect_pitch_artifacts(user.pitch),
                },
                'unvoiced_frames': {
                    'native': self._unvoiced_frames(native.pitch),
                    'user': self._unvoiced_frames(user.pitch),
                },
            },
            'formants': {
                'native': dict(native.formants.summary),
                'user': dict(user.formants.summary),
                'comparison': dimensions['formants'].details,
                'frame_fallbacks': {
                    'native': self._frame_fallbacks(native.formants),
                    'user': self._frame_fallbacks(user.formants),
                },
            },
            'mfcc': {
                'num_mel_filters': self.config.mfcc.num_filters,
                'static_comparison': static_mfcc.details,
                'delta_comparison': delta_mfcc.details,
                'static_score': static_mfcc.score,
                'delta_score': delta_mfcc.score,
                'combined_score': dimensions['mfcc'].score,
                'interpretation': {
                    'static': 'Vowel and consonant quality (which sounds are produced)',
                    'delta': 'Transitions between sounds (how smoothly sounds change)',
                    'low_delta_score': (
                        'Transitions between sounds are abrupt or unclear'
                        if delta_mfcc.score < 60 else None
                    ),
                },
            },
            'envelope': dimensions['envelope'].details,
            'duration': dimensions['duration'].details,
            'stress': {
                'score': stress.score,
                'position_score': stress.position_score,
                'matched': stress.matched,
                'native_peaks': stress.native_peak_count,
                'user_peaks': stress.user_peak_count,
                'reason': stress.reason,
                'details': dict(stress.details),
            },
            'quality': dimensions['quality'].details,
            'intensity': {
                'native': StressAnalyzer.detect_anomalies(native.intensity),
                'user': StressAnalyzer.detect_anomalies(user.intensity),
            },
            'spectrum': {
                'native': dict(native.spectrum),
                'user': dict(user.spectrum),
            },
            'fallbacks': fallbacks,
            'scoring': {
                'weights': weights,
                'raw_scores': raw_scores,
                'weighted_scores': weighted_scores,
                'overall_score': overall,
            },
        }

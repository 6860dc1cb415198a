"""Configuration loader for the pronunciation engine

Values come from a YAML file (``config/config.yaml`` by default, or
``config/config.<env>.yaml`` when ``PRONUNCIATION_ENV`` names an environment
with its own file) and are turned into an immutable ``AnalysisConfig`` that
callers pass explicitly into every analyzer.

Most thresholds below were tuned empirically on short, isolated-word
recordings. They are exposed as named fields so they can be recalibrated for
other recording conditions.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


logger = logging.getLogger(__name__)


DEFAULT_SCORE_WEIGHTS = {
    'pitch': 0.20,
    'formants': 0.15,
    'mfcc': 0.20,
    'envelope': 0.10,
    'duration': 0.10,
    'stress_position': 0.10,
    'stress': 0.10,
    'quality': 0.05,
}

DEFAULT_FORMANT_WEIGHTS = {'f1': 1.0, 'f2': 0.8, 'f3': 0.6}


class Config:
    """Raw YAML configuration with dot-notation access"""

    def __init__(self, config_path: str = None):
        if config_path is None:
            env = os.getenv('PRONUNCIATION_ENV', 'development')
            # Try environment-specific config first, fall back to default
            env_config = Path(f"config/config.{env}.yaml")
            if env_config.exists():
                config_path = str(env_config)
            else:
                config_path = "config/config.yaml"

        self.config_path = Path(config_path)
        self._config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file"""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, 'r') as f:
            return yaml.safe_load(f) or {}

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation

        Args:
            key: Configuration key in dot notation (e.g., 'pitch.min_pitch')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default

    def __getitem__(self, key: str) -> Any:
        """Allow dictionary-style access"""
        return self.get(key)

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._config)

    def validate(self) -> None:
        """Validate configuration values

        Raises:
            ValueError: If any section holds an out-of-range value
        """
        AnalysisConfig.from_dict(self._config).validate()


@dataclass(frozen=True)
class FFTConfig:
    """Spectrogram settings"""
    fft_size: int = 2048
    hop_size: int = 512
    max_freq: float = 8000.0
    num_mel_bins: int = 128


@dataclass(frozen=True)
class PitchConfig:
    """Autocorrelation pitch tracker settings

    Attributes:
        voicing_threshold: Minimum normalized autocorrelation for a voiced frame
        octave_ratio_high: Ratio to the neighbour median above which a frame is
            treated as an octave error (and as a jump by outlier interpolation)
        octave_ratio_low: Lower counterpart of ``octave_ratio_high``
    """
    frame_size: int = 2048
    hop_size: int = 128  # fine temporal resolution for single words
    min_pitch: float = 75.0
    max_pitch: float = 500.0
    voicing_threshold: float = 0.2
    octave_ratio_high: float = 1.5
    octave_ratio_low: float = 0.67
    median_window: int = 5


@dataclass(frozen=True)
class FormantConfig:
    """LPC formant extraction settings

    Attributes:
        energy_threshold_ratio: Voiced frames need RMS energy above this share
            of the recording's average frame energy
        energy_floor: Lower bound of the adaptive energy threshold
        max_voiced_zcr: Frames with a higher zero-crossing rate are unvoiced
        max_lpc_coefficient: LPC coefficients above this magnitude reject the frame
        min_root_magnitude: Roots at or below this radius are discarded
        max_root_magnitude: Roots at or above this radius are discarded
    """
    frame_size: int = 2048
    hop_size: int = 512
    lpc_order: int = 14
    pre_emphasis_alpha: float = 0.97
    energy_threshold_ratio: float = 0.1
    energy_floor: float = 0.001
    max_voiced_zcr: float = 0.5
    max_lpc_coefficient: float = 100.0
    min_root_magnitude: float = 0.3
    max_root_magnitude: float = 0.995
    min_root_angle: float = 0.01
    min_frequency: float = 90.0
    max_frequency: float = 5500.0
    max_bandwidth: float = 1500.0
    durand_kerner_iterations: int = 200
    durand_kerner_tolerance: float = 1e-10
    laguerre_iterations: int = 50
    spectrum_points: int = 1024
    f1_jump: float = 300.0
    f2_jump: float = 500.0
    f3_jump: float = 600.0
    inertia: float = 0.7
    median_window: int = 5


@dataclass(frozen=True)
class MFCCConfig:
    """MFCC settings tuned for short isolated-word utterances"""
    frame_size: int = 2048
    hop_size: int = 128
    num_filters: int = 60
    num_coeffs: int = 13
    low_freq: float = 100.0
    high_freq: float = 8000.0
    pre_emphasis_alpha: float = 0.97
    lifter: int = 22
    delta_window: int = 2


@dataclass(frozen=True)
class IntensityConfig:
    frame_size: int = 2048
    hop_size: int = 512
    tilt_frame_size: int = 1024
    tilt_split: float = 0.3
    envelope_window: int = 480
    envelope_hop: int = 240


@dataclass(frozen=True)
class StressConfig:
    """Stress peak detection and matching settings

    Attributes:
        min_height: Peaks must exceed this share of the track maximum
        tolerance_ratio: Time tolerance for matching peaks, as a share of the
            native duration
        min_tolerance: Lower bound of the time tolerance in seconds
        height_tolerance: Maximum relative height difference of matched peaks
        count_penalty: Points removed per unmatched difference in peak counts
    """
    min_height: float = 0.35
    tolerance_ratio: float = 0.15
    min_tolerance: float = 0.1
    height_tolerance: float = 0.4
    count_penalty: float = 10.0


@dataclass(frozen=True)
class DTWConfig:
    window: int = 20
    mfcc_window_ratio: float = 0.2
    formant_weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_FORMANT_WEIGHTS))


@dataclass(frozen=True)
class ScoringConfig:
    """Comparator settings

    Attributes:
        use_dtw: Align tracks with DTW (tempo-invariant) instead of point-by-point
        weights: Per-dimension weights, normalized to sum to 1 when scoring
        mfcc_static_weight: Share of the static MFCC score in the MFCC dimension;
            the rest comes from delta coefficients
        envelope_points: Common length envelopes are resampled to
    """
    use_dtw: bool = True
    weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_SCORE_WEIGHTS))
    mfcc_static_weight: float = 0.7
    envelope_points: int = 50


@dataclass(frozen=True)
class LoggingConfig:
    level: str = 'INFO'
    file: Optional[str] = None
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


_SECTIONS = {
    'fft': FFTConfig,
    'pitch': PitchConfig,
    'formants': FormantConfig,
    'mfcc': MFCCConfig,
    'intensity': IntensityConfig,
    'stress': StressConfig,
    'dtw': DTWConfig,
    'scoring': ScoringConfig,
    'logging': LoggingConfig,
}


def _build_section(name: str, section_cls, values: Optional[Dict[str, Any]]):
    if not values:
        return section_cls()
    known = {f.name for f in fields(section_cls)}
    unknown = set(values) - known
    if unknown:
        logger.warning(f"Ignoring unknown keys in '{name}' config section: {sorted(unknown)}")
    return section_cls(**{k: v for k, v in values.items() if k in known})


@dataclass(frozen=True)
class AnalysisConfig:
    """Complete, immutable configuration for one analysis run"""
    fft: FFTConfig = field(default_factory=FFTConfig)
    pitch: PitchConfig = field(default_factory=PitchConfig)
    formants: FormantConfig = field(default_factory=FormantConfig)
    mfcc: MFCCConfig = field(default_factory=MFCCConfig)
    intensity: IntensityConfig = field(default_factory=IntensityConfig)
    stress: StressConfig = field(default_factory=StressConfig)
    dtw: DTWConfig = field(default_factory=DTWConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'AnalysisConfig':
        """Build a config from a nested mapping (e.g. parsed YAML)

        Missing sections and keys keep their defaults.
        """
        data = data or {}
        sections = {
            name: _build_section(name, section_cls, data.get(name))
            for name, section_cls in _SECTIONS.items()
        }
        return cls(**sections)

    def validate(self) -> 'AnalysisConfig':
        """Check value ranges

        Returns:
            self, so calls can be chained

        Raises:
            ValueError: On the first out-of-range value
        """
        for name, size in (
            ('fft.fft_size', self.fft.fft_size),
            ('pitch.frame_size', self.pitch.frame_size),
            ('formants.frame_size', self.formants.frame_size),
            ('mfcc.frame_size', self.mfcc.frame_size),
            ('intensity.frame_size', self.intensity.frame_size),
            ('intensity.tilt_frame_size', self.intensity.tilt_frame_size),
        ):
            if size < 2 or size & (size - 1):
                raise ValueError(f"Invalid {name}: {size}, must be a power of two >= 2")

        for name, hop in (
            ('fft.hop_size', self.fft.hop_size),
            ('pitch.hop_size', self.pitch.hop_size),
            ('formants.hop_size', self.formants.hop_size),
            ('mfcc.hop_size', self.mfcc.hop_size),
            ('intensity.hop_size', self.intensity.hop_size),
        ):
            if hop <= 0:
                raise ValueError(f"Invalid {name}: {hop}, must be positive")

        if not 0 < self.pitch.min_pitch < self.pitch.max_pitch:
            raise ValueError(
                f"Invalid pitch range: [{self.pitch.min_pitch}, {self.pitch.max_pitch}]"
            )

        for name, alpha in (
            ('formants.pre_emphasis_alpha', self.formants.pre_emphasis_alpha),
            ('mfcc.pre_emphasis_alpha', self.mfcc.pre_emphasis_alpha),
            ('pitch.voicing_threshold', self.pitch.voicing_threshold),
            ('stress.min_height', self.stress.min_height),
            ('scoring.mfcc_static_weight', self.scoring.mfcc_static_weight),
        ):
            if not 0 <= alpha <= 1:
                raise ValueError(f"Invalid {name}: {alpha}, must be in [0, 1]")

        if self.formants.lpc_order < 2:
            raise ValueError(f"Invalid formants.lpc_order: {self.formants.lpc_order}")

        if self.mfcc.num_coeffs < 2 or self.mfcc.num_coeffs > self.mfcc.num_filters:
            raise ValueError(
                f"Invalid mfcc.num_coeffs: {self.mfcc.num_coeffs}, "
                f"must be in [2, num_filters={self.mfcc.num_filters}]"
            )

        if self.mfcc.low_freq >= self.mfcc.high_freq:
            raise ValueError(
                f"Invalid MFCC band: [{self.mfcc.low_freq}, {self.mfcc.high_freq}]"
            )

        weights = self.scoring.weights
        if any(w < 0 for w in weights.values()) or sum(weights.values()) <= 0:
            raise ValueError(f"Invalid scoring.weights: {weights}")

        if any(w < 0 for w in self.dtw.formant_weights.values()):
            raise ValueError(f"Invalid dtw.formant_weights: {self.dtw.formant_weights}")

        return self


def load_analysis_config(config_path: Optional[str] = None) -> AnalysisConfig:
    """Load and validate an ``AnalysisConfig``

    Args:
        config_path: YAML file to read. When omitted the environment-selected
            default file is used if it exists, otherwise built-in defaults.

    Returns:
        Validated AnalysisConfig

    Raises:
        FileNotFoundError: If an explicit ``config_path`` does not exist
        ValueError: If a value is out of range
    """
    try:
        raw = Config(config_path)
    except FileNotFoundError:
        if config_path is not None:
            raise
        logger.info("No config file found, using built-in defaults")
        return AnalysisConfig().validate()

    logger.info(f"Loaded configuration from {raw.config_path}")
    return AnalysisConfig.from_dict(raw.as_dict()).validate()

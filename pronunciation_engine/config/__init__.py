"""Configuration loading"""

from pronunciation_engine.config.config_loader import (
    Config,
    AnalysisConfig,
    FFTConfig,
    PitchConfig,
    FormantConfig,
    MFCCConfig,
    IntensityConfig,
    StressConfig,
    DTWConfig,
    ScoringConfig,
    LoggingConfig,
    load_analysis_config,
)

__all__ = [
    "Config",
    "AnalysisConfig",
    "FFTConfig",
    "PitchConfig",
    "FormantConfig",
    "MFCCConfig",
    "IntensityConfig",
    "StressConfig",
    "DTWConfig",
    "ScoringConfig",
    "LoggingConfig",
    "load_analysis_config",
]

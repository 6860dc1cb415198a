"""Data models for alignment and comparison results"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np

from pronunciation_engine.models.tracks import FeatureSet


@dataclass(frozen=True, eq=False)
class DTWResult:
    """Outcome of a dynamic time warping alignment

    Attributes:
        distance: Accumulated cost of the optimal path
        normalized_distance: distance / (len1 + len2)
        cost_matrix: (len1+1, len2+1) cumulative cost matrix with cost[0, 0] = 0,
                     infinite outside the band; None when not retained
    """
    distance: float
    normalized_distance: float
    cost_matrix: Optional[np.ndarray] = None

    def __post_init__(self):
        assert self.distance >= 0, "Distance must be non-negative"
        assert self.normalized_distance >= 0, "Normalized distance must be non-negative"


@dataclass(frozen=True)
class DimensionScore:
    """Score for one comparison dimension

    Attributes:
        score: Similarity score [0, 100]
        details: Diagnostics for the detailed report
        fallback_reason: Why a neutral or degraded score was used, if it was
    """
    score: float
    details: Dict[str, Any] = field(default_factory=dict)
    fallback_reason: Optional[str] = None

    def __post_init__(self):
        assert 0.0 <= self.score <= 100.0, "Score must be in [0, 100]"


@dataclass(frozen=True)
class StressComparison:
    """Stress pattern comparison between two recordings

    Attributes:
        score: Pattern-match score [0, 100]
        position_score: Score for the position of the strongest peak [0, 100]
        matched: Native peaks with a matching user peak
        native_peak_count: Peaks in the native track
        user_peak_count: Peaks in the user track
        reason: Set when a neutral score was returned
        details: Per-peak match diagnostics
    """
    score: float
    position_score: float
    matched: int
    native_peak_count: int
    user_peak_count: int
    reason: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        assert 0.0 <= self.score <= 100.0, "Score must be in [0, 100]"
        assert 0.0 <= self.position_score <= 100.0, "Position score must be in [0, 100]"


@dataclass(frozen=True, eq=False)
class ComparisonResult:
    """Full verdict of comparing a user recording against a native one

    Attributes:
        overall_score: Weighted score [0, 100]
        breakdown: Dimension name -> score [0, 100]
        detailed_report: Structured diagnostics, including every fallback
        feedback: Short human-readable feedback text
        native_features: Tracks extracted from the native recording
        user_features: Tracks extracted from the user recording
    """
    overall_score: float
    breakdown: Dict[str, float]
    detailed_report: Dict[str, Any]
    feedback: str
    native_features: FeatureSet
    user_features: FeatureSet

    def __post_init__(self):
        assert 0.0 <= self.overall_score <= 100.0, "Overall score must be in [0, 100]"
        for name, score in self.breakdown.items():
            assert 0.0 <= score <= 100.0, f"Score for {name} must be in [0, 100]"

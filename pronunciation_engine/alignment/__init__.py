"""Time alignment of feature sequences"""

from pronunciation_engine.alignment.dtw import DTW, AlignmentError

__all__ = ["DTW", "AlignmentError"]

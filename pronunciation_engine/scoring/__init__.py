"""Pronunciation comparison and scoring"""

from pronunciation_engine.scoring.comparator import PronunciationComparator, generate_feedback

__all__ = ["PronunciationComparator", "generate_feedback"]

"""Acoustic feature extraction"""

from pronunciation_engine.analysis.fft import FFTProcessor
from pronunciation_engine.analysis.pitch import PitchAnalyzer
from pronunciation_engine.analysis.polynomial import RootSolution, find_roots
from pronunciation_engine.analysis.formants import FormantExtractor, FormantCandidate
from pronunciation_engine.analysis.mfcc import MFCCAnalyzer
from pronunciation_engine.analysis.intensity import IntensityAnalyzer, StressAnalyzer

__all__ = [
    "FFTProcessor",
    "PitchAnalyzer",
    "RootSolution",
    "find_roots",
    "FormantExtractor",
    "FormantCandidate",
    "MFCCAnalyzer",
    "IntensityAnalyzer",
    "StressAnalyzer",
]

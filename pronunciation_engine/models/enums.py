"""Enumerations for analysis strategies and fallback reasons"""

from enum import Enum


class RootMethod(Enum):
    """Polynomial root-finding strategy that produced a set of roots"""
    DURAND_KERNER = "durand_kerner"
    LAGUERRE = "laguerre"


class FrameFallback(Enum):
    """Why a formant frame was marked unvoiced"""
    UNVOICED = "unvoiced"  # energy or zero-crossing gate
    INVALID_LPC = "invalid_lpc"
    NO_VALID_FORMANTS = "no_valid_formants"


class StepPattern(Enum):
    """DTW step patterns

    SYMMETRIC1: min(up, left, diagonal) + d
    SYMMETRIC2: min(up + d, left + d, diagonal + 2d)
    ASYMMETRIC: predecessors (i-1, j), (i-1, j-1), (i-1, j-2), each + d
    """
    SYMMETRIC1 = "symmetric1"
    SYMMETRIC2 = "symmetric2"
    ASYMMETRIC = "asymmetric"

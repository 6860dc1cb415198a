"""Pytest configuration and fixtures"""

import pytest
from hypothesis import settings, Verbosity

from pronunciation_engine.config import AnalysisConfig
from pronunciation_engine.models import SampleBuffer
from tests.signals import SAMPLE_RATE, resonator_signal, silence, syllable_signal

# Register Hypothesis profiles
settings.register_profile("ci", max_examples=100, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=20, verbosity=Verbosity.normal)
settings.register_profile("debug", max_examples=10, verbosity=Verbosity.verbose)

# Use CI profile by default
settings.load_profile("ci")


@pytest.fixture
def config():
    return AnalysisConfig()


@pytest.fixture(scope="session")
def vowel_buffer():
    """Noise-excited vowel with formants at 500, 1500 and 2500 Hz"""
    return SampleBuffer(samples=resonator_signal(), sample_rate=SAMPLE_RATE)


@pytest.fixture(scope="session")
def speech_buffer():
    """Two voiced syllables, the first one stressed"""
    return SampleBuffer(samples=syllable_signal(), sample_rate=SAMPLE_RATE)


@pytest.fixture(scope="session")
def silence_buffer():
    return SampleBuffer(samples=silence(1.0), sample_rate=SAMPLE_RATE)

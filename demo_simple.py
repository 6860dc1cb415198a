#!/usr/bin/env python3
"""Simple demo of the pronunciation comparator on synthetic words.

Builds a two-syllable "native" word and a few learner variants from
harmonic vowel sounds, then scores each variant against the native word.
No audio files are needed.
"""

import asyncio
import sys
from pathlib import Path

import numpy as np

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from pronunciation_engine.models import SampleBuffer
from pronunciation_engine.scoring import PronunciationComparator


SAMPLE_RATE = 16000


def synth_word(f0=125.0, duration=1.0, syllables=((0.3, 1.0), (0.7, 0.6)),
               formants=(700.0, 1200.0, 2600.0)):
    """Harmonics of ``f0`` weighted by formant peaks, shaped into syllables"""
    t = np.arange(int(duration * SAMPLE_RATE)) / SAMPLE_RATE
    signal = np.zeros_like(t)
    for k in range(1, int(4000 / f0)):
        freq = k * f0
        gain = sum(1.0 / (1.0 + ((freq - f) / 100.0) ** 2) for f in formants)
        signal += gain * np.sin(2 * np.pi * freq * t) / k

    envelope = np.zeros_like(t)
    for center, amplitude in syllables:
        envelope += amplitude * np.exp(-0.5 * ((t - center) / 0.07) ** 2)

    signal *= envelope
    return SampleBuffer(samples=0.5 * signal / np.max(np.abs(signal)), sample_rate=SAMPLE_RATE)


async def demo_comparison():
    """Score several learner variants against one native word."""

    print("=" * 60)
    print("Pronunciation Comparison Demo")
    print("=" * 60)
    print()

    print("Initializing comparator...")
    comparator = PronunciationComparator()
    print("Comparator ready")
    print()

    native = synth_word()
    variants = {
        "Same word": synth_word(),
        "Higher voice": synth_word(f0=200.0),
        "Stress on second syllable": synth_word(syllables=((0.3, 0.6), (0.7, 1.0))),
        "Spoken slowly": synth_word(duration=1.5, syllables=((0.45, 1.0), (1.05, 0.6))),
        "Different vowel": synth_word(formants=(300.0, 2300.0, 3000.0)),
    }

    print(f"Comparing {len(variants)} variants...")
    print("-" * 60)

    results = {}
    for name, user in variants.items():
        print(f"\n{name}:")
        result = await comparator.compare_async(native, user)
        results[name] = result

        print(f"  -> Overall score: {result.overall_score:.0f}")
        for dimension, score in result.breakdown.items():
            print(f"     {dimension:<16} {score:5.0f}")
        print(f"  -> Feedback: {result.feedback}")

        fallbacks = result.detailed_report['fallbacks']
        if fallbacks:
            print(f"  -> Fallbacks: {[f['dimension'] for f in fallbacks]}")

    print()
    print("-" * 60)
    print("Demo complete!")
    print()

    print("Summary:")
    for name, result in sorted(results.items(), key=lambda item: -item[1].overall_score):
        print(f"  {result.overall_score:5.0f}  {name}")

    print()
    print("=" * 60)


if __name__ == "__main__":
    try:
        asyncio.run(demo_comparison())
    except KeyboardInterrupt:
        print("\nDemo interrupted by user")
    except Exception as e:
        print(f"\nError: {e}")
        import traceback
        traceback.print_exc()

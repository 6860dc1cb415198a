"""Data model for decoded audio input"""

from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np


class InvalidAudioError(ValueError):
    """Exception raised when an audio buffer cannot be analyzed"""
    pass


@dataclass(frozen=True, eq=False)
class SampleBuffer:
    """A complete, decoded mono recording

    The samples are copied into a read-only float64 array on construction so
    a buffer can be shared between analyzers without any of them mutating it.

    Attributes:
        samples: Mono PCM samples as a 1-D float64 array
        sample_rate: Sample rate in Hz (e.g., 16000)

    Raises:
        InvalidAudioError: If the samples are empty, non-finite or not 1-D,
            or the sample rate is not a positive integer
    """
    samples: Union[np.ndarray, Sequence[float]]
    sample_rate: int

    def __post_init__(self):
        rate = self.sample_rate
        if isinstance(rate, (bool, np.bool_)) or not isinstance(rate, (int, np.integer, float, np.floating)):
            raise InvalidAudioError(f"Sample rate must be an integer, got {rate!r}")
        if rate != int(rate) or int(rate) <= 0:
            raise InvalidAudioError(f"Sample rate must be a positive integer, got {rate!r}")

        try:
            samples = np.array(self.samples, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise InvalidAudioError(f"Samples are not numeric: {e}") from e

        if samples.ndim != 1:
            raise InvalidAudioError(f"Samples must be 1-D (mono), got shape {samples.shape}")
        if samples.size == 0:
            raise InvalidAudioError("Sample buffer is empty")
        if not np.all(np.isfinite(samples)):
            raise InvalidAudioError("Samples contain NaN or infinite values")

        samples.flags.writeable = False
        object.__setattr__(self, 'samples', samples)
        object.__setattr__(self, 'sample_rate', int(rate))

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def duration(self) -> float:
        """Duration in seconds"""
        return len(self.samples) / self.sample_rate

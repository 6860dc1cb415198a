"""Numeric helpers shared by the analyzers

Complex arithmetic is expressed as a plain ``Complex`` value with free
functions. The scalar root polisher uses these; vectorized code paths use
numpy's complex128 directly.
"""

import math
from functools import lru_cache
from typing import NamedTuple, Sequence, Union

import numpy as np


ArrayLike = Union[np.ndarray, Sequence[float]]


class Complex(NamedTuple):
    """A complex number as a (real, imag) pair"""
    real: float
    imag: float


def complex_multiply(a: Complex, b: Complex) -> Complex:
    return Complex(
        a.real * b.real - a.imag * b.imag,
        a.real * b.imag + a.imag * b.real,
    )


def complex_divide(a: Complex, b: Complex) -> Complex:
    """Divide ``a`` by ``b``; returns 0 when ``|b|^2 < 1e-20``"""
    denom = b.real * b.real + b.imag * b.imag
    if denom < 1e-20:
        return Complex(0.0, 0.0)
    return Complex(
        (a.real * b.real + a.imag * b.imag) / denom,
        (a.imag * b.real - a.real * b.imag) / denom,
    )


def complex_subtract(a: Complex, b: Complex) -> Complex:
    return Complex(a.real - b.real, a.imag - b.imag)


def complex_add(a: Complex, b: Complex) -> Complex:
    return Complex(a.real + b.real, a.imag + b.imag)


def complex_abs(z: Complex) -> float:
    return math.hypot(z.real, z.imag)


def complex_angle(z: Complex) -> float:
    return math.atan2(z.imag, z.real)


def complex_sqrt(z: Complex) -> Complex:
    """Principal square root"""
    r = complex_abs(z)
    real = math.sqrt(max((r + z.real) / 2.0, 0.0))
    imag = math.copysign(math.sqrt(max((r - z.real) / 2.0, 0.0)), z.imag)
    return Complex(real, imag)


def to_complex(z: Complex) -> complex:
    return complex(z.real, z.imag)


def from_complex(z: complex) -> Complex:
    return Complex(z.real, z.imag)


@lru_cache(maxsize=32)
def _hamming(n: int) -> np.ndarray:
    if n == 1:
        window = np.ones(1)
    else:
        window = 0.54 - 0.46 * np.cos(2.0 * np.pi * np.arange(n) / (n - 1))
    window.flags.writeable = False
    return window


def hamming_window(n: int) -> np.ndarray:
    """Symmetric Hamming window of length ``n``"""
    if n <= 0:
        return np.zeros(0)
    return _hamming(n)


def apply_hamming_window(signal: ArrayLike) -> np.ndarray:
    signal = np.asarray(signal, dtype=np.float64)
    return signal * hamming_window(len(signal))


def median_filter(data: ArrayLike, window: int = 5, skip_zeros: bool = False) -> np.ndarray:
    """Sliding median with the window truncated at the edges

    Even-length windows take the upper median so every output value is one of
    the inputs.

    Args:
        data: Values to smooth
        window: Window length (centered)
        skip_zeros: Treat zeros as missing: they stay zero in the output and
            never contribute to a neighbour's median

    Returns:
        Smoothed values, same length as ``data``
    """
    values = np.asarray(data, dtype=np.float64)
    half = window // 2
    result = np.zeros_like(values)

    for i in range(len(values)):
        if skip_zeros and values[i] == 0:
            continue
        neighbourhood = values[max(0, i - half):min(len(values), i + half + 1)]
        if skip_zeros:
            neighbourhood = neighbourhood[neighbourhood != 0]
        ordered = np.sort(neighbourhood)
        result[i] = ordered[len(ordered) // 2]

    return result


def hz_to_mel(hz):
    """HTK mel scale: 2595 * log10(1 + f / 700)"""
    return 2595.0 * np.log10(1.0 + np.asarray(hz, dtype=np.float64) / 700.0)


def mel_to_hz(mel):
    return 700.0 * (np.power(10.0, np.asarray(mel, dtype=np.float64) / 2595.0) - 1.0)


def pearson_correlation(x: ArrayLike, y: ArrayLike) -> float:
    """Pearson correlation over the common prefix of ``x`` and ``y``

    Returns 0 for fewer than two points or a constant input.
    """
    n = min(len(x), len(y))
    if n < 2:
        return 0.0

    dx = np.asarray(x[:n], dtype=np.float64)
    dy = np.asarray(y[:n], dtype=np.float64)
    dx = dx - dx.mean()
    dy = dy - dy.mean()

    den = math.sqrt(float(np.dot(dx, dx)) * float(np.dot(dy, dy)))
    if den == 0:
        return 0.0
    return float(np.clip(np.dot(dx, dy) / den, -1.0, 1.0))


def resample_array(data: ArrayLike, target_len: int) -> np.ndarray:
    """Linear resampling with both endpoints preserved"""
    values = np.asarray(data, dtype=np.float64)
    if target_len <= 0:
        return np.zeros(0)
    if len(values) == 0:
        return np.zeros(target_len)
    if len(values) == target_len:
        return values.copy()
    if target_len == 1:
        return values[:1].copy()

    positions = np.linspace(0.0, len(values) - 1, target_len)
    return np.interp(positions, np.arange(len(values)), values)


def compute_rms(signal: ArrayLike) -> float:
    signal = np.asarray(signal, dtype=np.float64)
    if len(signal) == 0:
        return 0.0
    return float(np.sqrt(np.mean(signal * signal)))


def zero_crossing_rate(signal: ArrayLike) -> float:
    """Sign changes divided by frame length"""
    signal = np.asarray(signal, dtype=np.float64)
    if len(signal) < 2:
        return 0.0
    signs = signal >= 0
    return float(np.count_nonzero(signs[1:] != signs[:-1])) / len(signal)


def pre_emphasis(signal: ArrayLike, alpha: float = 0.97) -> np.ndarray:
    """y[0] = x[0], y[i] = x[i] - alpha * x[i-1]"""
    signal = np.asarray(signal, dtype=np.float64)
    if len(signal) == 0:
        return signal.copy()
    emphasized = np.empty_like(signal)
    emphasized[0] = signal[0]
    emphasized[1:] = signal[1:] - alpha * signal[:-1]
    return emphasized


def reverse_bits(x: int, bits: int) -> int:
    result = 0
    for _ in range(bits):
        result = (result << 1) | (x & 1)
        x >>= 1
    return result


def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n (1 for n <= 1)"""
    size = 1
    while size < n:
        size <<= 1
    return size

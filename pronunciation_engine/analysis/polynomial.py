"""Polynomial root finding for LPC formant analysis

Two strategies sit behind ``find_roots``: Durand-Kerner simultaneous
iteration is tried first, and Laguerre's method with sequential deflation
takes over when Durand-Kerner recovers fewer than half of the roots.

Coefficients are ordered from the highest power down, so
``[1, a1, ..., ap]`` is ``z^p + a1 z^(p-1) + ... + ap``.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from pronunciation_engine.analysis.math_utils import (
    Complex,
    complex_abs,
    complex_add,
    complex_divide,
    complex_multiply,
    complex_sqrt,
    complex_subtract,
    from_complex,
)
from pronunciation_engine.models.enums import RootMethod


logger = logging.getLogger(__name__)

RESIDUAL_TOLERANCE = 1e-6


@dataclass(frozen=True)
class RootSolution:
    """Roots of a polynomial and the strategy that found them"""
    roots: Tuple[Complex, ...]
    method: RootMethod

    def __len__(self) -> int:
        return len(self.roots)


def evaluate_polynomial(coeffs: Sequence[Complex], z: Complex) -> Complex:
    """Horner evaluation; coefficients run from the highest power down"""
    result = coeffs[0]
    for c in coeffs[1:]:
        result = complex_add(complex_multiply(result, z), c)
    return result


def _evaluate_with_derivatives(coeffs: Sequence[Complex], z: Complex) -> Tuple[Complex, Complex, Complex]:
    p = coeffs[0]
    dp = Complex(0.0, 0.0)
    ddp = Complex(0.0, 0.0)
    for c in coeffs[1:]:
        ddp = complex_add(complex_multiply(ddp, z), dp)
        dp = complex_add(complex_multiply(dp, z), p)
        p = complex_add(complex_multiply(p, z), c)
    return p, dp, Complex(2.0 * ddp.real, 2.0 * ddp.imag)


def relative_residuals(coeffs, roots: np.ndarray) -> np.ndarray:
    """``|p(z)| / sum_k |c_k| |z|^(n-k)`` for each root estimate"""
    coeffs = np.asarray(coeffs, dtype=np.complex128)
    roots = np.asarray(roots, dtype=np.complex128)
    with np.errstate(all='ignore'):
        value = np.abs(np.polyval(coeffs, roots))
        scale = np.polyval(np.abs(coeffs), np.abs(roots))
        return value / np.maximum(scale, 1e-300)


def durand_kerner(coeffs, max_iterations: int = 200, tolerance: float = 1e-10) -> np.ndarray:
    """All roots at once by Durand-Kerner (Weierstrass) iteration

    Initial estimates are spread around a circle whose radius bounds the
    roots, with varied radii so no two estimates start on the same orbit.
    Estimates that collide are nudged apart before the product is taken.

    Args:
        coeffs: Real or complex coefficients, highest power first
        max_iterations: Iteration cap
        tolerance: Stop when every update is smaller than this

    Returns:
        Complex root estimates (may contain non-finite values on divergence)
    """
    coeffs = np.asarray(coeffs, dtype=np.complex128)
    degree = len(coeffs) - 1
    if degree <= 0 or abs(coeffs[0]) < 1e-15:
        return np.zeros(0, dtype=np.complex128)

    monic = coeffs / coeffs[0]
    radius = 1.0 + float(np.max(np.abs(monic[1:])))

    index = np.arange(degree)
    angles = 2.0 * np.pi * index / degree + 0.3
    radii = radius * (0.4 + 0.2 * (index % 3))
    roots = radii * np.exp(1j * angles)

    with np.errstate(all='ignore'):
        for _ in range(max_iterations):
            values = np.polyval(monic, roots)

            diff = roots[:, None] - roots[None, :]
            np.fill_diagonal(diff, 1.0)
            diff[np.abs(diff) < 1e-12] += 1e-8 + 1e-8j
            product = diff.prod(axis=1)

            usable = np.abs(product) >= 1e-15
            delta = np.zeros_like(roots)
            delta[usable] = values[usable] / product[usable]
            roots = roots - delta

            max_delta = np.max(np.abs(delta))
            if not np.isfinite(max_delta) or max_delta < tolerance:
                break

    return roots


def laguerre_root(coeffs: Sequence[Complex], guess: Complex, max_iterations: int = 50) -> Complex:
    """Refine one root estimate with Laguerre's method"""
    n = len(coeffs) - 1
    x = guess

    for _ in range(max_iterations):
        p, dp, ddp = _evaluate_with_derivatives(coeffs, x)
        if complex_abs(p) < 1e-14:
            break

        g = complex_divide(dp, p)
        g2 = complex_multiply(g, g)
        h = complex_subtract(g2, complex_divide(ddp, p))

        # (n - 1) * (n * H - G^2)
        inner = complex_subtract(Complex(n * h.real, n * h.imag), g2)
        root_disc = complex_sqrt(Complex((n - 1) * inner.real, (n - 1) * inner.imag))

        plus = complex_add(g, root_disc)
        minus = complex_subtract(g, root_disc)
        denom = plus if complex_abs(plus) > complex_abs(minus) else minus
        if complex_abs(denom) < 1e-15:
            break

        step = complex_divide(Complex(float(n), 0.0), denom)
        x = complex_subtract(x, step)
        if complex_abs(step) < 1e-10:
            break

    return x


def _deflate(coeffs: Sequence[Complex], root: Complex) -> List[Complex]:
    """Divide out (z - root) by synthetic division, dropping the remainder"""
    quotient = [coeffs[0]]
    for c in coeffs[1:-1]:
        quotient.append(complex_add(c, complex_multiply(quotient[-1], root)))
    return quotient


def laguerre_roots(coeffs, max_iterations: int = 50, polish_iterations: int = 20) -> List[Complex]:
    """All roots by Laguerre's method with deflation

    Each root is found on the deflated polynomial and then polished against
    the original one.
    """
    original = [Complex(float(np.real(c)), float(np.imag(c))) for c in coeffs]
    degree = len(original) - 1
    if degree <= 0:
        return []

    roots: List[Complex] = []
    current = list(original)
    for _ in range(degree):
        root = laguerre_root(current, Complex(0.5, 0.5), max_iterations)
        roots.append(root)
        current = _deflate(current, root)

    return [laguerre_root(original, root, polish_iterations) for root in roots]


def find_roots(
    coeffs,
    max_iterations: int = 200,
    tolerance: float = 1e-10,
    laguerre_iterations: int = 50,
) -> RootSolution:
    """Roots of a polynomial, choosing the strategy by recovered-root count

    Durand-Kerner roots count as recovered when they are finite and their
    relative residual is below 1e-6. With fewer than ``degree / 2`` recovered
    roots the Laguerre solution is returned instead.

    Args:
        coeffs: Coefficients, highest power first
        max_iterations: Durand-Kerner iteration cap
        tolerance: Durand-Kerner convergence tolerance
        laguerre_iterations: Per-root Laguerre iteration cap

    Returns:
        RootSolution with the finite roots and the method used
    """
    coeffs = np.asarray(coeffs, dtype=np.float64)
    degree = len(coeffs) - 1
    if degree <= 0:
        return RootSolution(roots=(), method=RootMethod.DURAND_KERNER)

    estimates = durand_kerner(coeffs, max_iterations, tolerance)
    finite = estimates[np.isfinite(estimates)]
    recovered = finite[relative_residuals(coeffs, finite) < RESIDUAL_TOLERANCE]

    if len(recovered) >= degree / 2:
        return RootSolution(
            roots=tuple(from_complex(z) for z in recovered),
            method=RootMethod.DURAND_KERNER,
        )

    logger.debug(
        f"Durand-Kerner recovered {len(recovered)}/{degree} roots, falling back to Laguerre"
    )
    roots = [
        r for r in laguerre_roots(coeffs, laguerre_iterations)
        if np.isfinite(r.real) and np.isfinite(r.imag)
    ]
    return RootSolution(roots=tuple(roots), method=RootMethod.LAGUERRE)

"""
Shared numeric helpers for the distance estimators.

All helpers are GLSL-style and broadcast over numpy arrays. Point arrays
have shape ``(..., 3)``; scalar fields have shape ``(...,)``.
"""

import math

import numpy as np

TAU = 2.0 * math.pi
PHI = 1.61803398875  # golden ratio
GOLDEN_ANGLE = TAU / (PHI + 1.0)  # ~2.399963

# Epsilon floors, from least to most sensitive denominator
EPS_POWER = 1e-4
EPS_QUAT = 1e-6
EPS_DIRECTION = 1e-8


def clamp(x, lo, hi):
    return np.minimum(np.maximum(x, lo), hi)


def mix(a, b, t):
    """Linear blend ``a*(1-t) + b*t``."""
    return a * (1.0 - t) + b * t


def length(v: np.ndarray) -> np.ndarray:
    return np.sqrt(np.sum(v * v, axis=-1))


def dot(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.sum(a * b, axis=-1)


def safe_acos(x):
    """acos with the argument clamped into [-1, 1]."""
    return np.arccos(clamp(x, -1.0, 1.0))


def box_fold(p: np.ndarray, size: float) -> np.ndarray:
    """Reflect each coordinate back into ``[-size, size]``."""
    return clamp(p, -size, size) * 2.0 - p


def smooth_min(a, b, k: float):
    """
    Polynomial smooth minimum.

    Blends two distance fields over a band of width ``k``; for ``k -> 0``
    this tends to ``min(a, b)``.
    """
    h = clamp(0.5 + 0.5 * (b - a) / k, 0.0, 1.0)
    return mix(b, a, h) - k * h * (1.0 - h)


def fibonacci_direction(index: int, total: int) -> np.ndarray:
    """Unit vector of point ``index`` out of ``total`` on a Fibonacci sphere."""
    i = index + 0.5
    t = i / total
    theta = GOLDEN_ANGLE * i
    y = 1.0 - 2.0 * t
    radius = math.sqrt(max(0.0, 1.0 - y * y))
    return np.array([math.cos(theta) * radius, y, math.sin(theta) * radius])


def escape_distance(r: np.ndarray, dr: np.ndarray, eps: float = EPS_POWER) -> np.ndarray:
    """Escape-time distance estimate ``0.5 * log(r) * r / dr``."""
    return 0.5 * np.log(np.maximum(r, eps)) * r / dr


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))

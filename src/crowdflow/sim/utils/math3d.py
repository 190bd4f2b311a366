from __future__ import annotations

import math

from pygame.math import Vector3

FORWARD = Vector3(0.0, 0.0, 1.0)


def _safe_normalize(vector: Vector3, fallback: Vector3 | None = None) -> Vector3:
    magnitude_sq = vector.length_squared()
    if magnitude_sq < 1e-10:
        return Vector3() if fallback is None else Vector3(fallback)
    inv = 1.0 / math.sqrt(magnitude_sq)
    return Vector3(vector.x * inv, vector.y * inv, vector.z * inv)


def _clamp_length(vector: Vector3, max_length: float) -> Vector3:
    if max_length <= 0:
        return Vector3()
    magnitude_sq = vector.length_squared()
    if magnitude_sq <= max_length * max_length:
        return Vector3(vector)
    inv = max_length / math.sqrt(magnitude_sq)
    return Vector3(vector.x * inv, vector.y * inv, vector.z * inv)


def _clamp_value(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(max_value, value))

from __future__ import annotations

import random

from pygame.math import Vector3


class DeterministicRng:
    def __init__(self, seed: int | None):
        self._seed = seed
        self._random = random.Random(seed)

    @property
    def seed(self) -> int | None:
        return self._seed

    def reset(self, seed: int | None = None) -> None:
        if seed is not None:
            self._seed = seed
        self._random.seed(self._seed)

    def next_float(self) -> float:
        return self._random.random()

    def next_range(self, low: float, high: float) -> float:
        return self._random.uniform(low, high)

    def next_ground_point(self, low_x: float, high_x: float, low_z: float, high_z: float) -> Vector3:
        x = self._random.uniform(low_x, high_x)
        z = self._random.uniform(low_z, high_z)
        return Vector3(x, 0.0, z)

    def next_index(self, count: int) -> int:
        return self._random.randrange(count)

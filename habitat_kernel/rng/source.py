"""
Random Source — the seeded generator underneath every stochastic decision.

Behavioral Contract:
- mulberry32 over a 32-bit state; next() returns a float in [0, 1)
- Same seed + same call sequence = same values, byte for byte
- reseed() is indistinguishable from constructing a fresh instance
- Never touches the process-wide `random` module
"""

import math
import time
from typing import List, Optional, Sequence, TypeVar

T = TypeVar("T")

_MASK32 = 0xFFFFFFFF
_INCREMENT = 0x6D2B79F5
_TWO_POW_32 = 4294967296.0
_MAX_SEED = 2147483647


class InvalidArgument(ValueError):
    """Raised when a derived operation receives unusable inputs."""
    pass


def _imul(a: int, b: int) -> int:
    """32-bit integer multiply (low 32 bits of the product)."""
    return (a * b) & _MASK32


def time_seed() -> int:
    """Fallback seed for unseeded use, derived from wall-clock milliseconds."""
    return int(time.time() * 1000) % _MAX_SEED


class RandomSource:
    """
    Deterministic pseudo-random generator with derived distributions.

    One instance is constructed per simulation and injected into every
    component that needs randomness.
    """

    def __init__(self, seed: Optional[int] = None):
        if seed is None:
            seed = time_seed()
        self._seed = seed
        self._state = seed & _MASK32
        self._cached_gaussian: Optional[float] = None

    @property
    def seed(self) -> int:
        """The seed this source was (re)started from."""
        return self._seed

    @property
    def state(self) -> int:
        """Current internal 32-bit state."""
        return self._state

    def reseed(self, seed: int) -> None:
        """Reset to `seed`; the future sequence matches RandomSource(seed)."""
        self._seed = seed
        self._state = seed & _MASK32
        self._cached_gaussian = None

    def getstate(self) -> tuple:
        return (self._seed, self._state, self._cached_gaussian)

    def setstate(self, state: tuple) -> None:
        """Restore a value returned by getstate()."""
        self._seed, self._state, self._cached_gaussian = state

    def next(self) -> float:
        """Next float in [0, 1)."""
        self._state = (self._state + _INCREMENT) & _MASK32
        t = self._state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & _MASK32
        return ((t ^ (t >> 14)) & _MASK32) / _TWO_POW_32

    # --- Uniform draws ---

    def uniform(self, low: float, high: float) -> float:
        """Float in [low, high)."""
        return self.next() * (high - low) + low

    def randint(self, low: int, high: int) -> int:
        """Integer in [low, high)."""
        if high <= low:
            raise InvalidArgument(f"Empty integer range [{low}, {high})")
        return int(math.floor(self.next() * (high - low))) + low

    def bernoulli(self, probability: float = 0.5) -> bool:
        """True with the given probability."""
        return self.next() < probability

    def jitter(self, base: float, variation: float) -> float:
        """base ± variation, uniformly."""
        return base + self.uniform(-variation, variation)

    # --- Gaussian ---

    def normal(self, mean: float = 0.0, std: float = 1.0) -> float:
        """Box–Muller normal draw; the paired sample is cached for the next call."""
        if self._cached_gaussian is not None:
            z = self._cached_gaussian
            self._cached_gaussian = None
            return z * std + mean

        u = 0.0
        while u == 0.0:
            u = self.next()
        v = 0.0
        while v == 0.0:
            v = self.next()

        radius = math.sqrt(-2.0 * math.log(u))
        z0 = radius * math.cos(2.0 * math.pi * v)
        self._cached_gaussian = radius * math.sin(2.0 * math.pi * v)
        return z0 * std + mean

    # --- Collections ---

    def weighted_choice(self, items: Sequence[T], weights: Sequence[float]) -> T:
        """Pick one item with probability proportional to its weight."""
        if len(items) != len(weights):
            raise InvalidArgument("items and weights must have the same length")
        if not items:
            raise InvalidArgument("Cannot choose from an empty sequence")
        total = sum(weights)
        if total <= 0:
            raise InvalidArgument("Total weight must be positive")

        remaining = self.next() * total
        for item, weight in zip(items, weights):
            remaining -= weight
            if remaining <= 0:
                return item
        return items[-1]

    def choice(self, items: Sequence[T]) -> T:
        """Uniformly pick one item."""
        if not items:
            raise InvalidArgument("Cannot choose from an empty sequence")
        return items[self.randint(0, len(items))]

    def shuffle(self, items: List[T]) -> List[T]:
        """Fisher–Yates shuffle in place. Returns the same list."""
        for i in range(len(items) - 1, 0, -1):
            j = self.randint(0, i + 1)
            items[i], items[j] = items[j], items[i]
        return items

    def sample(self, items: Sequence[T], count: int) -> List[T]:
        """Draw `count` distinct items without replacement."""
        if count < 0:
            raise InvalidArgument("count must be non-negative")
        if count >= len(items):
            return self.shuffle(list(items))

        picked: List[T] = []
        seen = set()
        while len(picked) < count:
            index = self.randint(0, len(items))
            if index not in seen:
                seen.add(index)
                picked.append(items[index])
        return picked

    # --- Other distributions ---

    def exponential(self, lam: float) -> float:
        if lam <= 0:
            raise InvalidArgument("lambda must be positive")
        return -math.log(1.0 - self.next()) / lam

    def poisson(self, lam: float) -> int:
        if lam < 0:
            raise InvalidArgument("lambda must be non-negative")
        limit = math.exp(-lam)
        k = 0
        p = 1.0
        while True:
            k += 1
            p *= self.next()
            if p <= limit:
                break
        return k - 1

    def triangular(self, low: float, high: float, mode: float) -> float:
        if not low <= mode <= high or high == low:
            raise InvalidArgument("Expected low <= mode <= high with low < high")
        u = self.next()
        c = (mode - low) / (high - low)
        if u < c:
            return low + math.sqrt(u * (high - low) * (mode - low))
        return high - math.sqrt((1 - u) * (high - low) * (high - mode))

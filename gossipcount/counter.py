"""Probabilistic counting sketches usable as conflict-free replicated counters."""

from __future__ import annotations

import abc
import math
import random

U32_BITS = 32
U32_MASK = (1 << U32_BITS) - 1
U64_MAX = (1 << 64) - 1

SCALING_FACTOR = 1.29281


class RandomnessSource(abc.ABC):
    """A source of uniformly distributed pseudo-random 32-bit values."""

    @abc.abstractmethod
    def next_u32(self) -> int:
        """Return the next pseudo-random value in ``[0, 2**32)``."""


class StdRandomnessSource(RandomnessSource):
    """Randomness source backed by a seeded standard PRNG."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(seed)

    def next_u32(self) -> int:
        return self._rng.getrandbits(U32_BITS)


class CounterError(Exception):
    """Base class for counter errors."""


class CounterSaturatedError(CounterError):
    """Raised when incrementing a counter that already counts infinitely many elements."""


class IncompatibleCountersError(CounterError):
    """Raised when merging counters with different configurations."""


def uniform_u32_to_geometric(rand_no: int, num_bits: int) -> int:
    """Map a uniform 32-bit value to a geometric(1/2) bin in ``[0, num_bits)``."""
    if num_bits < 1:
        raise ValueError("num_bits must be positive")
    value = rand_no & U32_MASK
    trailing_zeros = U32_BITS if value == 0 else (value & -value).bit_length() - 1
    return min(trailing_zeros, num_bits - 1)


def geometric_to_sample_u32(bit_idx: int) -> int:
    """Return a uniform sample that selects the given bit index."""
    if not 0 <= bit_idx < U32_BITS:
        raise ValueError(f"bit index must be in [0, {U32_BITS})")
    return 1 << bit_idx


def _first_zero(bits: int) -> int:
    """Position of the lowest clear bit."""
    return ((~bits) & (bits + 1)).bit_length() - 1


class ProbabilisticCounter:
    """A probabilistic counting sketch made of several bit-vector instances.

    Bit 0 of every instance is the one most likely to be set.
    """

    __slots__ = ("_bits_per_instance", "_instances")

    def __init__(self, bits_per_instance: int, num_instances: int) -> None:
        if num_instances <= 0:
            raise ValueError("the number of instances must be positive")
        if not 0 < bits_per_instance <= U32_BITS or bits_per_instance % 8 != 0:
            raise ValueError("bits per instance must be one of 8, 16, 24, 32")
        self._bits_per_instance = bits_per_instance
        self._instances = [0] * num_instances

    @property
    def bits_per_instance(self) -> int:
        return self._bits_per_instance

    @property
    def num_instances(self) -> int:
        return len(self._instances)

    @property
    def _full(self) -> int:
        return (1 << self._bits_per_instance) - 1

    def empty_copy(self) -> ProbabilisticCounter:
        """Return a new zero counter with the same configuration."""
        return ProbabilisticCounter(self._bits_per_instance, self.num_instances)

    def copy(self) -> ProbabilisticCounter:
        """Return an independent copy of this counter."""
        clone = self.empty_copy()
        clone._instances = list(self._instances)
        return clone

    def set_to_zero(self) -> None:
        """Make the counter count no elements."""
        self._instances = [0] * self.num_instances

    def set_to_infinity(self) -> None:
        """Make the counter count infinitely many elements."""
        self._instances = [self._full] * self.num_instances

    def _is_saturated(self) -> bool:
        full = self._full
        return any(instance == full for instance in self._instances)

    def count_one_more(self, rs: RandomnessSource) -> None:
        """Count one more element, drawing one random value per instance.

        Raises CounterSaturatedError, leaving the counter intact, if it
        already counts infinitely many elements.
        """
        if self._is_saturated():
            raise CounterSaturatedError("counter is at infinity")
        self._instances = [
            instance | (1 << uniform_u32_to_geometric(rs.next_u32(), self._bits_per_instance))
            for instance in self._instances
        ]

    def merge_with(self, other: ProbabilisticCounter) -> None:
        """Merge another counter into this one.

        Raises IncompatibleCountersError, leaving the counter intact, if
        the configurations differ.
        """
        if (
            self._bits_per_instance != other._bits_per_instance
            or self.num_instances != other.num_instances
        ):
            raise IncompatibleCountersError("incompatible counters")
        self._instances = [a | b for a, b in zip(self._instances, other._instances)]

    def evaluate(self) -> int:
        """Return the estimated number of counted elements."""
        if self._is_saturated():
            return U64_MAX
        if not any(self._instances):
            return 0
        avg = sum(_first_zero(instance) for instance in self._instances) / self.num_instances
        return math.floor(SCALING_FACTOR * 2.0**avg + 0.5)

    def _check_position(self, instance_idx: int, bit_idx: int) -> None:
        if not 0 <= instance_idx < self.num_instances:
            raise IndexError(f"instance index {instance_idx} out of range")
        if not 0 <= bit_idx < self._bits_per_instance:
            raise IndexError(f"bit index {bit_idx} out of range")

    def get_bit(self, instance_idx: int, bit_idx: int) -> bool:
        """Return a single bit of one instance."""
        self._check_position(instance_idx, bit_idx)
        return bool((self._instances[instance_idx] >> bit_idx) & 1)

    def set_bit(self, instance_idx: int, bit_idx: int, value: bool) -> None:
        """Set a single bit of one instance to the given value."""
        self._check_position(instance_idx, bit_idx)
        mask = 1 << bit_idx
        if value:
            self._instances[instance_idx] |= mask
        else:
            self._instances[instance_idx] &= ~mask

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProbabilisticCounter):
            return NotImplemented
        return (
            self._bits_per_instance == other._bits_per_instance
            and self._instances == other._instances
        )

    def __repr__(self) -> str:
        width = self._bits_per_instance
        rendered = ", ".join(format(i, f"0{width}b")[::-1] for i in self._instances)
        return f"ProbabilisticCounter(bits_per_instance={width}, instances=[{rendered}])"
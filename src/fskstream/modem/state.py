"""Demodulation configuration and per-session decode state."""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from .errors import ConfigurationError
from .fsk import THRESHOLD, samples_per_bit

logger = logging.getLogger(__name__)


def _check_rate(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value <= 0:
        raise ConfigurationError(f"{name} must be a positive integer: {value!r}")


def _check_tone(name: str, freq) -> None:
    if freq is None:
        raise ConfigurationError(f"Tone frequency {name} is required")
    if isinstance(freq, bool) or not isinstance(freq, (int, float, np.number)):
        raise ConfigurationError(f"Tone frequency {name} must be a number: {freq!r}")
    if not math.isfinite(freq) or freq <= 0:
        raise ConfigurationError(f"Tone frequency {name} must be positive: {freq}")


def check_expected_length(expected_length: Optional[int]) -> None:
    """Validate a frame length target (None means unknown)."""
    if expected_length is None:
        return
    if isinstance(expected_length, bool) or not isinstance(expected_length, (int, np.integer)):
        raise ConfigurationError(f"Expected length must be an integer: {expected_length!r}")
    if expected_length < 0:
        raise ConfigurationError(f"Expected length must not be negative: {expected_length}")


@dataclass(frozen=True)
class DemodulationConfig:
    """Immutable decode parameters, fixed when a state is created."""

    sample_rate: int
    bit_rate: int
    f0: float
    f1: float
    threshold: float = THRESHOLD
    expected_length: Optional[int] = None
    use_skip: bool = False
    skip_seconds: float = 0.0

    def __post_init__(self):
        _check_rate("Sample rate", self.sample_rate)
        _check_rate("Bit rate", self.bit_rate)
        _check_tone("f0", self.f0)
        _check_tone("f1", self.f1)
        if not self.threshold > 1.0:
            raise ConfigurationError(f"Threshold must be greater than 1.0: {self.threshold}")
        check_expected_length(self.expected_length)
        if not (math.isfinite(self.skip_seconds) and self.skip_seconds >= 0):
            raise ConfigurationError(f"Skip duration must be finite and not negative: {self.skip_seconds}")

        if self.f0 == self.f1:
            logger.warning("f0 and f1 are both %s Hz; bit decisions will be meaningless", self.f0)

    @property
    def samples_per_bit(self) -> int:
        return samples_per_bit(self.sample_rate, self.bit_rate)

    @property
    def skip_samples(self) -> int:
        """Leading samples to discard before the first bit window."""
        if self.use_skip and self.skip_seconds > 0:
            return int(math.floor(self.skip_seconds * self.sample_rate))
        return 0


@dataclass(eq=False)
class DemodulationState:
    """Mutable decode state carried between chunk-processing calls.

    One state belongs to one decode session. It is never shared between
    sessions and must not be fed by two callers at once.

    Attributes:
        carryover: Samples received but not yet consumed into a bit window
        bits: Decided bits not yet handed out as a completed frame
        in_frame: True while bits are being decoded
        armed: True while the state may enter a frame; cleared when a
            frame completes and set again by start_frame()
        skip_remaining: Leading samples still to discard
        samples_consumed: Absolute count of samples dropped so far; the
            absolute index of carryover[0]
        expected_length: Bits in the outstanding frame, or None if unknown
    """

    config: DemodulationConfig
    carryover: np.ndarray = field(init=False, repr=False)
    bits: list[int] = field(init=False, default_factory=list)
    in_frame: bool = field(init=False, default=False)
    armed: bool = field(init=False, default=True)
    skip_remaining: int = field(init=False)
    samples_consumed: int = field(init=False, default=0)
    expected_length: Optional[int] = field(init=False)

    def __post_init__(self):
        if not isinstance(self.config, DemodulationConfig):
            raise ConfigurationError(f"Expected a DemodulationConfig, got {type(self.config).__name__}")
        self.carryover = np.zeros(0, dtype=np.float64)
        self.skip_remaining = self.config.skip_samples
        self.expected_length = self.config.expected_length

    @property
    def samples_per_bit(self) -> int:
        return self.config.samples_per_bit

    @property
    def max_idle_samples(self) -> int:
        """Carryover bound while idle (no frame, no pending bits)."""
        return self.samples_per_bit * 8

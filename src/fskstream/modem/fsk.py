"""Binary FSK (Frequency Shift Keying) bit detection.

Default channel (Bell 202 tones at 300 baud):
- Space (binary 0, f0): 1200 Hz
- Mark (binary 1, f1): 2200 Hz
- Baud rate: 300 bits per second
- Sample rate: 44100 Hz
"""

import math
from typing import Iterable, Union

import numpy as np


# FSK parameters
SAMPLE_RATE = 44100  # Hz
SPACE_FREQ = 1200    # Hz (binary 0)
MARK_FREQ = 2200     # Hz (binary 1)
BIT_RATE = 300       # bits per second
THRESHOLD = 1.4      # mark/space energy ratio for a confident decision

# Added to both tone energies so silent windows still produce a ratio
ENERGY_EPSILON = 1e-12

# RMS level the normalizer scales every buffer to
TARGET_RMS = 0.5


def samples_per_bit(sample_rate: int, bit_rate: int) -> int:
    """Number of samples in one bit window (round half up, at least 1)."""
    return max(1, int(math.floor(sample_rate / bit_rate + 0.5)))


def normalize_buffer(samples: np.ndarray) -> np.ndarray:
    """Scale samples to TARGET_RMS and clip to [-1, 1].

    The gain is computed over the whole buffer. A silent buffer is
    treated as having an RMS of 1.
    """
    samples = np.asarray(samples, dtype=np.float64)
    if len(samples) == 0:
        return np.zeros(0, dtype=np.float64)

    rms = float(np.sqrt(np.mean(samples * samples)))
    if rms == 0.0:
        rms = 1.0
    gain = TARGET_RMS / rms
    return np.clip(samples * gain, -1.0, 1.0)


def tone_energies(
    window: np.ndarray,
    start_index: int,
    sample_rate: int,
    f0: float,
    f1: float,
) -> tuple[float, float]:
    """Correlate a bit window against both tones.

    Reference oscillators are evaluated at absolute sample indices
    ``start_index + n`` so that phase is continuous over the whole stream
    no matter how it was chunked.

    Returns:
        (energy at f0, energy at f1)
    """
    window = np.asarray(window, dtype=np.float64)
    t = (start_index + np.arange(len(window), dtype=np.float64)) / sample_rate

    w0 = 2 * np.pi * f0 * t
    w1 = 2 * np.pi * f1 * t

    c0 = np.dot(window, np.cos(w0))
    s0 = np.dot(window, np.sin(w0))
    c1 = np.dot(window, np.cos(w1))
    s1 = np.dot(window, np.sin(w1))

    return float(c0 * c0 + s0 * s0), float(c1 * c1 + s1 * s1)


def decide_bit(energy0: float, energy1: float, threshold: float = THRESHOLD) -> int:
    """Turn a pair of tone energies into a bit decision."""
    ratio = (energy1 + ENERGY_EPSILON) / (energy0 + ENERGY_EPSILON)

    if ratio > threshold:
        return 1
    if ratio < 1 / threshold:
        return 0

    # Ambiguous band: favour f1 on ties
    return 1 if energy1 >= energy0 else 0


def detect_bit(
    window: np.ndarray,
    start_index: int,
    sample_rate: int,
    f0: float,
    f1: float,
    threshold: float = THRESHOLD,
) -> int:
    """Detect one bit from a window of exactly samples_per_bit samples."""
    energy0, energy1 = tone_energies(window, start_index, sample_rate, f0, f1)
    return decide_bit(energy0, energy1, threshold)


class FSKModulator:
    """Generate FSK audio for a bit sequence.

    Used to produce test signals and for playback tooling; the decoder
    does not depend on it.
    """

    def __init__(
        self,
        sample_rate: int = SAMPLE_RATE,
        space_freq: float = SPACE_FREQ,
        mark_freq: float = MARK_FREQ,
        bit_rate: int = BIT_RATE,
        amplitude: float = 0.8,
    ):
        self.sample_rate = sample_rate
        self.space_freq = space_freq
        self.mark_freq = mark_freq
        self.bit_rate = bit_rate
        self.amplitude = amplitude
        self.samples_per_bit = samples_per_bit(sample_rate, bit_rate)
        self.phase = 0.0  # Continuous phase for smooth transitions

    def modulate_bit(self, bit: int) -> np.ndarray:
        """Generate audio samples for a single bit."""
        freq = self.mark_freq if bit else self.space_freq
        t = np.arange(self.samples_per_bit) / self.sample_rate

        samples = self.amplitude * np.sin(2 * np.pi * freq * t + self.phase)

        # Update phase for next bit (maintain continuity)
        self.phase += 2 * np.pi * freq * self.samples_per_bit / self.sample_rate
        self.phase = self.phase % (2 * np.pi)

        return samples.astype(np.float32)

    def modulate(self, bits: Union[str, Iterable[int]]) -> np.ndarray:
        """Generate audio samples for a bit sequence ("1011" or [1, 0, 1, 1])."""
        if isinstance(bits, str):
            if set(bits) - {"0", "1"}:
                raise ValueError(f"Bit string may only contain '0' and '1': {bits!r}")
            bits = [1 if ch == "1" else 0 for ch in bits]

        samples = [self.modulate_bit(bit) for bit in bits]
        if not samples:
            return np.array([], dtype=np.float32)
        return np.concatenate(samples)

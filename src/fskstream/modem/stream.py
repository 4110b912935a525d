"""Streaming FSK demodulation.

Samples may arrive in chunks of any size. A DemodulationState carries
everything needed to continue exactly where the previous call stopped:

- unconsumed samples (carryover) shorter than one bit window
- bits decided so far for the frame in progress
- the absolute sample index of the carryover, so reference oscillator
  phase is the same as if the signal had been processed in one pass

demod_chunk() returns a completed frame as a list of bits, or None.
demodulate() drives it over a whole in-memory signal.
"""

import logging
from typing import Optional

import numpy as np

from .errors import InvalidStateError
from .fsk import detect_bit, normalize_buffer
from .state import DemodulationConfig, DemodulationState, check_expected_length

logger = logging.getLogger(__name__)

# Batch driver chunking
CHUNK_BITS = 16
MIN_CHUNK_SIZE = 1024


def _require_state(state) -> DemodulationState:
    if not isinstance(state, DemodulationState):
        raise InvalidStateError(
            f"demod_chunk requires a valid DemodulationState, got {type(state).__name__}"
        )
    return state


def demod_chunk(chunk: Optional[np.ndarray], state: DemodulationState) -> Optional[list[int]]:
    """Demodulate one chunk of samples.

    Args:
        chunk: New samples, or None/empty to flush what is already buffered
        state: Decode state of this session (mutated)

    Returns:
        The completed frame's bits if a frame finished during this call,
        otherwise None
    """
    state = _require_state(state)

    if chunk is None:
        chunk = np.zeros(0, dtype=np.float64)
    chunk = np.asarray(chunk, dtype=np.float64).ravel()

    combined = np.concatenate([state.carryover, chunk]) if len(state.carryover) else chunk.copy()
    base_offset = state.samples_consumed  # absolute index of combined[0]

    if len(combined) == 0:
        state.carryover = combined
        return None

    normalized = normalize_buffer(combined)
    idx = 0

    # Leading skip
    if not state.in_frame and state.skip_remaining > 0:
        skip = min(state.skip_remaining, len(combined))
        idx = skip
        state.skip_remaining -= skip
        if state.skip_remaining > 0:
            state.samples_consumed = base_offset + idx
            state.carryover = combined[idx:]
            return None

    if not state.in_frame and state.armed:
        state.in_frame = True
        logger.debug("Frame start at sample %d", base_offset + idx)

    spb = state.samples_per_bit
    config = state.config
    completed = None

    if state.in_frame:
        if state.expected_length is not None and len(state.bits) >= state.expected_length:
            completed = _complete_frame(state)

        while completed is None and idx + spb <= len(normalized):
            bit = detect_bit(
                normalized[idx:idx + spb],
                base_offset + idx,
                config.sample_rate,
                config.f0,
                config.f1,
                config.threshold,
            )
            state.bits.append(bit)
            idx += spb

            if state.expected_length is not None and len(state.bits) >= state.expected_length:
                completed = _complete_frame(state)

    state.samples_consumed = base_offset + idx
    state.carryover = combined[idx:]

    # Keep idle noise from piling up
    if not state.in_frame and not state.bits:
        max_keep = state.max_idle_samples
        if len(state.carryover) > max_keep:
            trim = len(state.carryover) - max_keep
            state.carryover = state.carryover[trim:]
            state.samples_consumed += trim

    return completed


def _complete_frame(state: DemodulationState) -> list[int]:
    """Cut the outstanding frame out of the accumulator and go idle."""
    length = state.expected_length
    frame = state.bits[:length]
    state.bits = state.bits[length:]
    state.in_frame = False
    state.armed = False
    state.expected_length = None
    logger.debug("Frame complete: %d bits", len(frame))
    return frame


def start_frame(state: DemodulationState, expected_length: Optional[int] = None) -> None:
    """Arm an idle state to decode another frame.

    Args:
        state: Decode state (mutated)
        expected_length: Bits in the next frame, or None if unknown

    Raises:
        InvalidStateError: A frame is still being decoded
    """
    state = _require_state(state)
    check_expected_length(expected_length)
    if state.in_frame:
        raise InvalidStateError("start_frame called while a frame is in progress")

    state.expected_length = expected_length
    state.armed = True


def take_bits(state: DemodulationState) -> list[int]:
    """Return and clear the bits decoded so far.

    A frame of unknown length never completes on its own; callers read
    it incrementally with this.
    """
    state = _require_state(state)
    bits = state.bits
    state.bits = []
    if state.expected_length is not None:
        state.expected_length = max(0, state.expected_length - len(bits))
    return bits


def demodulate(signal: np.ndarray, config: DemodulationConfig) -> str:
    """Demodulate a complete signal into a string of '0'/'1' characters.

    The signal is fed through demod_chunk() in fixed-size chunks followed
    by one empty flush call, exactly as a streaming caller would.

    Args:
        signal: Mono audio samples
        config: Decode parameters; expected_length caps the bit count

    Returns:
        Decoded bits, earliest first
    """
    signal = np.asarray(signal, dtype=np.float64).ravel()
    logger.debug(
        "demodulate: fs=%d, br=%d, f0=%s, f1=%s, len=%d",
        config.sample_rate, config.bit_rate, config.f0, config.f1, len(signal),
    )

    spb = config.samples_per_bit
    start = min(len(signal), config.skip_samples)
    max_bits = (len(signal) - start) // spb
    total_bits = min(config.expected_length, max_bits) if config.expected_length else max_bits

    logger.debug("demodulate: samples_per_bit=%d, start=%d, total_bits=%d", spb, start, total_bits)

    state = DemodulationState(config)
    state.skip_remaining = start
    state.expected_length = total_bits

    chunk_size = max(spb * CHUNK_BITS, MIN_CHUNK_SIZE)
    frames = []

    for i in range(0, len(signal), chunk_size):
        result = demod_chunk(signal[i:i + chunk_size], state)
        if result:
            frames.append(result)

    result = demod_chunk(None, state)
    if result:
        frames.append(result)

    bits = "".join("1" if bit else "0" for frame in frames for bit in frame)
    logger.debug("demodulate: decoded bits length = %d", len(bits))
    return bits

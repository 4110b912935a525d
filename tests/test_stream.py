"""Tests for streaming FSK demodulation."""

import pytest
import numpy as np

from fskstream.modem.errors import ConfigurationError, InvalidStateError
from fskstream.modem.fsk import FSKModulator
from fskstream.modem.state import DemodulationConfig, DemodulationState
from fskstream.modem.stream import demod_chunk, demodulate, start_frame, take_bits


FS = 44100
BR = 300
F0 = 1200
F1 = 2200
SPB = 147

PATTERN = "1011001110001011"


def make_config(**overrides):
    params = dict(sample_rate=FS, bit_rate=BR, f0=F0, f1=F1)
    params.update(overrides)
    return DemodulationConfig(**params)


def keyed_signal(bits, amplitude=0.8):
    """Each bit is samples_per_bit samples of a pure sine starting at phase 0."""
    t = np.arange(SPB) / FS
    return np.concatenate([
        amplitude * np.sin(2 * np.pi * (F1 if b == "1" else F0) * t)
        for b in bits
    ])


def stream_decode(signal, config, chunk_sizes):
    """Feed signal through demod_chunk in the given chunk sizes, then flush."""
    state = DemodulationState(config)
    frames = []
    pos = 0
    sizes = iter(chunk_sizes)
    while pos < len(signal):
        size = next(sizes)
        frame = demod_chunk(signal[pos:pos + size], state)
        if frame:
            frames.append(frame)
        pos += size
    frame = demod_chunk(None, state)
    if frame:
        frames.append(frame)
    return "".join(str(b) for frame in frames for b in frame)


def repeat(size):
    while True:
        yield size


class TestDemodulate:
    """Test the batch driver."""

    def test_roundtrip_1011(self):
        """Keyed tones for 1011 decode back to 1011."""
        signal = keyed_signal("1011")
        assert len(signal) == 4 * SPB

        assert demodulate(signal, make_config(expected_length=4)) == "1011"

    def test_modulator_roundtrip(self):
        """Continuous-phase modulator output decodes back to its bits."""
        signal = FSKModulator(sample_rate=FS, space_freq=F0, mark_freq=F1, bit_rate=BR).modulate(PATTERN)
        assert demodulate(signal, make_config(expected_length=len(PATTERN))) == PATTERN

    def test_unknown_length_decodes_all_windows(self):
        """Without an expected length every complete window is decoded."""
        signal = np.concatenate([keyed_signal(PATTERN), np.zeros(SPB // 2)])
        assert demodulate(signal, make_config()) == PATTERN

    def test_expected_length_caps_output(self):
        assert demodulate(keyed_signal("1011"), make_config(expected_length=2)) == "10"

    def test_expected_length_longer_than_signal(self):
        """Asking for more bits than fit returns what the signal holds."""
        assert demodulate(keyed_signal("1011"), make_config(expected_length=100)) == "1011"

    def test_empty_signal(self):
        assert demodulate(np.array([], dtype=np.float32), make_config()) == ""

    def test_shorter_than_one_bit(self):
        assert demodulate(np.zeros(SPB - 1), make_config()) == ""

    def test_silence_decodes_as_ones(self):
        """Zero-energy windows fall through to the tie-break, never an error."""
        assert demodulate(np.zeros(4 * SPB), make_config(expected_length=4)) == "1111"

    def test_spans_many_chunks(self):
        """Signals longer than one batch chunk decode across chunk boundaries."""
        bits = PATTERN * 8  # 128 bits, several 2352-sample chunks
        assert demodulate(keyed_signal(bits), make_config(expected_length=len(bits))) == bits

    def test_amplitude_independent(self):
        """Normalization makes the decode independent of input level."""
        config = make_config(expected_length=len(PATTERN))
        assert demodulate(keyed_signal(PATTERN, amplitude=0.01), config) == PATTERN
        assert demodulate(keyed_signal(PATTERN, amplitude=5.0), config) == PATTERN


class TestSkip:
    """Test the leading sample skip."""

    def test_skipped_samples_never_decoded(self):
        """A loud preamble inside the skip region is ignored."""
        preamble = keyed_signal("0" * 15)  # 2205 samples = 0.05 s
        signal = np.concatenate([preamble, keyed_signal(PATTERN)])
        config = make_config(use_skip=True, skip_seconds=0.05)

        assert demodulate(signal, config) == PATTERN

    def test_without_skip_preamble_is_decoded(self):
        preamble = keyed_signal("0" * 15)
        signal = np.concatenate([preamble, keyed_signal(PATTERN)])

        assert demodulate(signal, make_config()) == "0" * 15 + PATTERN

    def test_skip_longer_than_signal(self):
        config = make_config(use_skip=True, skip_seconds=10.0)
        assert demodulate(keyed_signal("1011"), config) == ""

    @pytest.mark.parametrize("chunk", [1, 100, 2205, 3000])
    def test_skip_across_chunks(self, chunk):
        """Skip is honoured however the preamble is split."""
        signal = np.concatenate([keyed_signal("0" * 15), keyed_signal(PATTERN)])
        config = make_config(use_skip=True, skip_seconds=0.05, expected_length=len(PATTERN))

        assert stream_decode(signal, config, repeat(chunk)) == PATTERN

    def test_skip_advances_samples_consumed(self):
        config = make_config(use_skip=True, skip_seconds=0.05)
        state = DemodulationState(config)

        assert demod_chunk(np.zeros(1000), state) is None
        assert state.samples_consumed == 1000
        assert state.skip_remaining == 1205
        assert len(state.carryover) == 0
        assert state.in_frame is False


class TestPhaseContinuity:
    """Chunked decoding matches the batch driver bit for bit."""

    @pytest.mark.parametrize("chunk", [1, 7, SPB - 1, SPB, SPB + 1, 1000, 5000])
    def test_fixed_chunk_sizes(self, chunk):
        signal = FSKModulator(sample_rate=FS, space_freq=F0, mark_freq=F1, bit_rate=BR).modulate(PATTERN)
        config = make_config(expected_length=len(PATTERN))

        expected = demodulate(signal, config)
        assert expected == PATTERN
        assert stream_decode(signal, config, repeat(chunk)) == expected

    def test_random_chunk_sizes(self):
        signal = FSKModulator(sample_rate=FS, space_freq=F0, mark_freq=F1, bit_rate=BR).modulate(PATTERN * 2)
        config = make_config(expected_length=len(PATTERN) * 2)
        rng = np.random.default_rng(42)
        sizes = (int(n) for n in rng.integers(0, 400, size=10_000))

        assert stream_decode(signal, config, sizes) == demodulate(signal, config)

    def test_empty_chunks_interleaved(self):
        """Empty chunks between data change nothing."""
        signal = keyed_signal(PATTERN)
        config = make_config(expected_length=len(PATTERN))
        sizes = [0, 500, 0, 0, 1000, 0] + [300] * 20

        assert stream_decode(signal, config, iter(sizes)) == PATTERN

    def test_samples_accounted_for(self):
        """samples_consumed + carryover always equals samples fed."""
        signal = keyed_signal(PATTERN)
        state = DemodulationState(make_config())
        fed = 0
        previous = 0

        for i in range(0, len(signal), 100):
            demod_chunk(signal[i:i + 100], state)
            fed += len(signal[i:i + 100])
            assert state.samples_consumed + len(state.carryover) == fed
            assert state.samples_consumed >= previous
            assert len(state.carryover) < SPB
            previous = state.samples_consumed


class TestDemodChunk:
    """Test single chunk-processing calls."""

    def test_frame_completes_in_one_call(self):
        state = DemodulationState(make_config(expected_length=4))
        assert demod_chunk(keyed_signal("1011"), state) == [1, 0, 1, 1]

    def test_partial_frame_returns_none(self):
        state = DemodulationState(make_config(expected_length=4))

        assert demod_chunk(keyed_signal("10"), state) is None
        assert state.bits == [1, 0]
        assert state.in_frame is True
        assert demod_chunk(keyed_signal("11"), state) == [1, 0, 1, 1]

    def test_frame_completes_across_chunks(self):
        """A window split between two chunks is decoded once it is whole."""
        state = DemodulationState(make_config(expected_length=2))
        signal = keyed_signal("10")

        assert demod_chunk(signal[:SPB + 100], state) is None
        assert len(state.carryover) == 100
        assert demod_chunk(signal[SPB + 100:], state) == [1, 0]

    def test_flush_decodes_buffered_windows(self):
        """After re-arming, an empty flush decodes what is already buffered."""
        state = DemodulationState(make_config(expected_length=2))

        assert demod_chunk(keyed_signal("1011"), state) == [1, 0]
        start_frame(state, 2)
        assert demod_chunk(None, state) == [1, 1]

    def test_completion_stops_decoding(self):
        """Windows after the frame end stay undecoded."""
        state = DemodulationState(make_config(expected_length=2))

        assert demod_chunk(keyed_signal("1011"), state) == [1, 0]
        assert state.bits == []
        assert state.in_frame is False
        assert state.expected_length is None
        assert state.samples_consumed == 2 * SPB
        assert len(state.carryover) == 2 * SPB

    def test_idempotent_flush(self):
        """Flushing with less than a window pending does nothing."""
        state = DemodulationState(make_config())
        demod_chunk(keyed_signal("10")[:SPB + 50], state)
        consumed = state.samples_consumed

        assert demod_chunk(None, state) is None
        assert demod_chunk(np.array([]), state) is None
        assert state.samples_consumed == consumed
        assert len(state.carryover) == 50
        assert state.bits == [1]

    def test_flush_of_empty_state(self):
        state = DemodulationState(make_config())
        assert demod_chunk(None, state) is None
        assert state.samples_consumed == 0
        assert state.in_frame is False

    def test_zero_length_frame(self):
        """An expected length of zero completes with an empty frame."""
        state = DemodulationState(make_config(expected_length=0))
        assert demod_chunk(keyed_signal("1"), state) == []
        assert state.bits == []

    def test_accepts_lists_and_float32(self):
        state = DemodulationState(make_config(expected_length=2))
        signal = keyed_signal("01")

        assert demod_chunk(list(signal[:SPB]), state) is None
        assert demod_chunk(signal[SPB:].astype(np.float32), state) == [0, 1]


class TestInvalidState:
    """Test error handling."""

    @pytest.mark.parametrize("state", [None, {}, "state", make_config()])
    def test_requires_state(self, state):
        with pytest.raises(InvalidStateError):
            demod_chunk(np.zeros(10), state)

    def test_start_frame_requires_state(self):
        with pytest.raises(InvalidStateError):
            start_frame(None, 4)

    def test_take_bits_requires_state(self):
        with pytest.raises(InvalidStateError):
            take_bits(object())

    def test_start_frame_rejects_negative_length(self):
        """A bad length raises without touching the state."""
        state = DemodulationState(make_config(expected_length=1))
        demod_chunk(keyed_signal("1"), state)

        with pytest.raises(ConfigurationError):
            start_frame(state, -3)
        assert state.armed is False
        assert state.expected_length is None

    def test_start_frame_while_in_frame(self):
        """The outstanding frame's length cannot be replaced mid-frame."""
        state = DemodulationState(make_config(expected_length=4))
        demod_chunk(keyed_signal("10"), state)

        with pytest.raises(InvalidStateError):
            start_frame(state, 8)
        assert state.in_frame is True
        assert state.expected_length == 4
        assert demod_chunk(keyed_signal("11"), state) == [1, 0, 1, 1]


class TestFrameControl:
    """Test idle state, re-arming and incremental reads."""

    def test_idle_after_frame(self):
        """A completed state does not decode until re-armed."""
        state = DemodulationState(make_config(expected_length=2))
        assert demod_chunk(keyed_signal("10"), state) == [1, 0]

        assert demod_chunk(keyed_signal("1111"), state) is None
        assert state.bits == []
        assert state.in_frame is False

    def test_rearm_decodes_next_frame(self):
        mod = FSKModulator(sample_rate=FS, space_freq=F0, mark_freq=F1, bit_rate=BR)
        state = DemodulationState(make_config(expected_length=4))

        assert demod_chunk(mod.modulate("1011"), state) == [1, 0, 1, 1]
        start_frame(state, 3)
        assert state.armed is True
        assert demod_chunk(mod.modulate("001"), state) == [0, 0, 1]

    def test_take_bits_unknown_length(self):
        """Bits of an unknown-length frame are read incrementally."""
        state = DemodulationState(make_config())

        assert demod_chunk(keyed_signal("1011"), state) is None
        assert take_bits(state) == [1, 0, 1, 1]
        assert take_bits(state) == []

        demod_chunk(keyed_signal("01"), state)
        assert take_bits(state) == [0, 1]

    def test_take_bits_shortens_outstanding_frame(self):
        state = DemodulationState(make_config(expected_length=4))

        demod_chunk(keyed_signal("10"), state)
        assert take_bits(state) == [1, 0]
        assert state.expected_length == 2
        assert demod_chunk(keyed_signal("11"), state) == [1, 1]


class TestNoiseTrimming:
    """Idle carryover stays bounded."""

    def test_idle_zeros_bounded(self):
        state = DemodulationState(make_config(expected_length=2))
        demod_chunk(keyed_signal("10"), state)
        bound = 8 * SPB
        fed = 2 * SPB
        previous = state.samples_consumed

        for _ in range(50):
            assert demod_chunk(np.zeros(500), state) is None
            fed += 500
            assert len(state.carryover) <= bound
            assert state.samples_consumed + len(state.carryover) == fed
            assert state.samples_consumed >= previous
            previous = state.samples_consumed

        assert len(state.carryover) == bound
        assert state.samples_consumed == fed - bound

    def test_trimming_keeps_newest_samples(self):
        state = DemodulationState(make_config(expected_length=1))
        demod_chunk(keyed_signal("1"), state)

        chunk = np.arange(2000, dtype=np.float64)
        demod_chunk(chunk, state)
        assert np.array_equal(state.carryover, chunk[-8 * SPB:])

    def test_no_trimming_in_frame(self):
        """Samples pending in a frame are never discarded."""
        state = DemodulationState(make_config())
        demod_chunk(np.zeros(SPB - 1), state)
        assert state.samples_consumed == 0
        assert len(state.carryover) == SPB - 1

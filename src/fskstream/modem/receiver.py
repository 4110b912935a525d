"""Live FSK receiver.

Connects an AudioInterface capture stream to the streaming demodulator
and hands completed frames to a callback.
"""

import logging
import threading
import time
from typing import Callable, Optional

import numpy as np

from .audio_io import AudioInterface
from .state import DemodulationConfig, DemodulationState
from .stream import demod_chunk, start_frame, take_bits

logger = logging.getLogger(__name__)


class StreamReceiver:
    """Decode frames from captured audio as it arrives."""

    def __init__(
        self,
        config: DemodulationConfig,
        audio: Optional[AudioInterface] = None,
        on_frame: Optional[Callable[[list[int]], None]] = None,
        loopback: bool = False,
        input_device: Optional[int] = None,
    ):
        """Initialize receiver.

        Args:
            config: Decode parameters; the sample rate also drives capture
            audio: Audio interface to use, or None to create one
            on_frame: Called with the bits of every completed frame
            loopback: If True, use loopback audio for testing
            input_device: Input device index (microphone)
        """
        self.config = config

        if audio is None:
            audio = AudioInterface(
                sample_rate=config.sample_rate,
                loopback=loopback,
                input_device=input_device,
            )
        elif audio.sample_rate != config.sample_rate:
            logger.warning(
                "Capture runs at %d Hz but decoding assumes %d Hz",
                audio.sample_rate, config.sample_rate,
            )
        self.audio = audio
        self.on_frame = on_frame

        # One state, one writer
        self.state = DemodulationState(config)
        self._lock = threading.Lock()

    def start(self) -> None:
        """Start capturing."""
        self.audio.start()

    def stop(self) -> None:
        """Stop capturing."""
        self.audio.stop()

    def feed(self, samples: Optional[np.ndarray]) -> Optional[list[int]]:
        """Demodulate one block; returns a completed frame if there is one."""
        with self._lock:
            frame = demod_chunk(samples, self.state)

        if frame is not None:
            logger.debug("Received frame of %d bits", len(frame))
            if self.on_frame is not None:
                self.on_frame(frame)
        return frame

    def poll(self, timeout: float = 0.1) -> Optional[list[int]]:
        """Pull one capture block and demodulate it."""
        block = self.audio.receive_block(timeout=timeout)
        if len(block) == 0:
            return None
        return self.feed(block)

    def receive_frame(self, timeout: float = 5.0) -> Optional[list[int]]:
        """Block until a frame completes.

        Args:
            timeout: Maximum time to wait

        Returns:
            Frame bits, or None on timeout
        """
        deadline = time.time() + timeout

        while time.time() < deadline:
            remaining = deadline - time.time()
            frame = self.poll(timeout=max(0.0, min(0.1, remaining)))
            if frame is not None:
                return frame

        # A frame may end exactly on the last block boundary
        return self.feed(None)

    def rearm(self, expected_length: Optional[int] = None) -> None:
        """Prepare for the next frame after one completed.

        Capture queued while idle is discarded so the next frame starts
        with fresh audio.
        """
        with self._lock:
            start_frame(self.state, expected_length)
        self.audio.clear_receive_buffer()

    def take_bits(self) -> list[int]:
        """Bits decoded so far for a frame of unknown length."""
        with self._lock:
            return take_bits(self.state)

    @property
    def is_running(self) -> bool:
        """Check if receiver is running."""
        return self.audio.is_running

    def __enter__(self) -> "StreamReceiver":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

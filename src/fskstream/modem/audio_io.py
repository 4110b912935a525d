"""Audio capture and playback using sounddevice.

Delivers mono float32 capture blocks to the streaming demodulator and
plays generated FSK audio.

Device selection via environment variables:
- FSK_INPUT_DEVICE: Input device index
- FSK_OUTPUT_DEVICE: Output device index
- FSK_LOOPBACK: Set to 1 for loopback mode (no audio hardware)
"""

import logging
import os
import queue
import threading
from typing import Optional

import numpy as np

try:
    import sounddevice as sd
    SOUNDDEVICE_AVAILABLE = True
    SOUNDDEVICE_ERROR = None
except (ImportError, OSError) as e:
    sd = None  # type: ignore
    SOUNDDEVICE_AVAILABLE = False
    SOUNDDEVICE_ERROR = str(e)

from .fsk import SAMPLE_RATE

logger = logging.getLogger(__name__)


def get_device_from_env(var_name: str) -> Optional[int]:
    """Get device index from environment variable."""
    value = os.environ.get(var_name)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            logger.warning("Ignoring non-integer %s=%r", var_name, value)
    return None


def is_loopback_mode() -> bool:
    """Check if loopback mode is enabled via environment."""
    value = os.environ.get('FSK_LOOPBACK', '').lower()
    return value in ('1', 'true', 'yes', 'on')


class AudioInterface:
    """Mono audio capture (and playback) using sounddevice."""

    def __init__(
        self,
        sample_rate: int = SAMPLE_RATE,
        blocksize: int = 1024,
        input_device: Optional[int] = None,
        output_device: Optional[int] = None,
        loopback: bool = False,
    ):
        """Initialize audio interface.

        Args:
            sample_rate: Audio sample rate in Hz
            blocksize: Number of samples per capture block
            input_device: Input device index, or None for default/env
            output_device: Output device index, or None for default/env
            loopback: If True, transmitted audio is captured directly
                (no audio hardware needed)

        Environment variables:
            FSK_INPUT_DEVICE: Override input device
            FSK_OUTPUT_DEVICE: Override output device
            FSK_LOOPBACK: Enable loopback mode (1/true/yes)
        """
        self.sample_rate = sample_rate
        self.blocksize = blocksize

        # Device selection priority: argument > environment > default
        self.input_device = (
            input_device
            if input_device is not None
            else get_device_from_env('FSK_INPUT_DEVICE')
        )
        self.output_device = (
            output_device
            if output_device is not None
            else get_device_from_env('FSK_OUTPUT_DEVICE')
        )

        self.loopback = loopback or is_loopback_mode()

        self._rx_queue: queue.Queue[np.ndarray] = queue.Queue()

        self._input_stream: Optional["sd.InputStream"] = None
        self._running = False
        self._lock = threading.Lock()

    def start(self) -> None:
        """Start capturing."""
        if self.loopback:
            self._running = True
            return

        if not SOUNDDEVICE_AVAILABLE:
            raise RuntimeError(f"sounddevice not available: {SOUNDDEVICE_ERROR}")

        with self._lock:
            if self._running:
                return

            self._input_stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=1,
                blocksize=self.blocksize,
                device=self.input_device,
                dtype=np.float32,
                callback=self._input_callback,
            )
            self._input_stream.start()
            self._running = True
            logger.debug("Capture started on device %s at %d Hz", self.input_device, self.sample_rate)

    def stop(self) -> None:
        """Stop capturing."""
        with self._lock:
            self._running = False

            if self._input_stream:
                self._input_stream.stop()
                self._input_stream.close()
                self._input_stream = None

    def _input_callback(
        self,
        indata: np.ndarray,
        frames: int,
        time_info: dict,
        status: "sd.CallbackFlags",
    ) -> None:
        """Callback for input stream - queue one mono block."""
        if status:
            logger.warning("Capture status: %s", status)
        self._rx_queue.put(indata[:, 0].copy())

    def clear_receive_buffer(self) -> None:
        """Discard any pending captured audio."""
        while True:
            try:
                self._rx_queue.get_nowait()
            except queue.Empty:
                break

    def transmit(self, samples: np.ndarray, blocking: bool = True) -> None:
        """Play audio samples (float32, -1 to 1).

        In loopback mode the samples are queued for capture instead.
        """
        samples_f32 = np.asarray(samples, dtype=np.float32).ravel()

        if self.loopback:
            if not self._running:
                raise RuntimeError("Audio interface not running")
            self._rx_queue.put(samples_f32.copy())
            return

        if not SOUNDDEVICE_AVAILABLE:
            raise RuntimeError(f"sounddevice not available: {SOUNDDEVICE_ERROR}")

        sd.play(samples_f32, self.sample_rate, device=self.output_device)
        if blocking:
            sd.wait()

    def receive_block(self, timeout: float = 0.1) -> np.ndarray:
        """Return the next captured block, or an empty array on timeout."""
        if not self._running:
            raise RuntimeError("Audio interface not running")

        try:
            return self._rx_queue.get(timeout=timeout)
        except queue.Empty:
            return np.zeros(0, dtype=np.float32)

    @property
    def is_running(self) -> bool:
        """Check if audio interface is running."""
        return self._running

    def __enter__(self) -> "AudioInterface":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()


class LoopbackAudioInterface(AudioInterface):
    """Audio interface with internal loopback for testing."""

    def __init__(self, sample_rate: int = SAMPLE_RATE, **kwargs):
        super().__init__(sample_rate=sample_rate, loopback=True, **kwargs)


def list_audio_devices() -> list[dict]:
    """List available audio devices."""
    if sd is None:
        return []

    devices = sd.query_devices()
    default_in, default_out = sd.default.device
    result = []

    for i, dev in enumerate(devices):
        result.append({
            "index": i,
            "name": dev["name"],
            "channels_in": dev["max_input_channels"],
            "channels_out": dev["max_output_channels"],
            "sample_rate": int(dev["default_samplerate"]),
            "default_in": i == default_in,
            "default_out": i == default_out,
        })

    return result

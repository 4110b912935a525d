"""Physical Layer - streaming FSK demodulator."""

from .errors import ConfigurationError, FSKError, InvalidStateError
from .fsk import FSKModulator
from .state import DemodulationConfig, DemodulationState
from .stream import demod_chunk, demodulate, start_frame, take_bits

__all__ = [
    "ConfigurationError",
    "DemodulationConfig",
    "DemodulationState",
    "FSKError",
    "FSKModulator",
    "InvalidStateError",
    "AudioInterface",
    "StreamReceiver",
    "demod_chunk",
    "demodulate",
    "start_frame",
    "take_bits",
]


def __getattr__(name):
    """Lazy imports (audio I/O requires sounddevice)."""
    if name == "AudioInterface":
        from .audio_io import AudioInterface
        return AudioInterface
    if name == "StreamReceiver":
        from .receiver import StreamReceiver
        return StreamReceiver
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

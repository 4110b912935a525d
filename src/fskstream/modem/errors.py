"""Exceptions raised by the FSK demodulator."""


class FSKError(Exception):
    """Base class for fskstream errors."""


class ConfigurationError(FSKError, ValueError):
    """Invalid sample rate, bit rate, tone or frame parameters."""


class InvalidStateError(FSKError, TypeError):
    """Chunk processing called without a constructed DemodulationState."""

"""WAV container helpers for captured and generated audio.

Only used by capture/playback tooling; decoding works on plain sample
arrays.
"""

import io
from typing import Iterable

import numpy as np
from scipy.io import wavfile

from .errors import ConfigurationError


def pcm_to_int16(pcm: np.ndarray) -> np.ndarray:
    """Convert float samples to 16-bit PCM.

    Samples are clipped to [-1, 1]; negative values scale by 0x8000 and
    positive values by 0x7FFF, truncating toward zero.
    """
    pcm = np.clip(np.asarray(pcm, dtype=np.float64).ravel(), -1.0, 1.0)
    scaled = np.where(pcm < 0, pcm * 0x8000, pcm * 0x7FFF)
    return np.trunc(scaled).astype(np.int16)


def pcm_to_wav(pcm: np.ndarray, sample_rate: int) -> bytes:
    """Encode mono float samples as a 16-bit PCM WAV file in memory."""
    buf = io.BytesIO()
    wavfile.write(buf, int(sample_rate), pcm_to_int16(pcm))
    return buf.getvalue()


def write_wav(path, pcm: np.ndarray, sample_rate: int) -> None:
    """Write mono float samples to a 16-bit PCM WAV file."""
    with open(path, "wb") as f:
        f.write(pcm_to_wav(pcm, sample_rate))


def read_wav(path) -> tuple[np.ndarray, int]:
    """Read a mono WAV file as float64 samples in [-1, 1].

    Returns:
        (samples, sample_rate)
    """
    sample_rate, data = wavfile.read(path)

    if data.ndim > 1:
        if data.shape[1] != 1:
            raise ConfigurationError(
                f"Only mono audio is supported, got {data.shape[1]} channels"
            )
        data = data[:, 0]

    if data.dtype == np.uint8:
        samples = (data.astype(np.float64) - 128) / 128
    elif data.dtype == np.int16:
        samples = data.astype(np.float64) / 0x8000
    elif data.dtype == np.int32:
        samples = data.astype(np.float64) / 0x80000000
    else:
        samples = data.astype(np.float64)

    return samples, int(sample_rate)


def concat_float32(chunks: Iterable[np.ndarray]) -> np.ndarray:
    """Join sample chunks into one float32 array."""
    chunks = [np.asarray(c, dtype=np.float32).ravel() for c in chunks]
    if not chunks:
        return np.zeros(0, dtype=np.float32)
    return np.concatenate(chunks)

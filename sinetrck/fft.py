"""
Windowing and a radix-2 FFT

All functions operate either on a single frame (1D) or on a stack of
frames (2D, one frame per row)
"""
from functools import lru_cache
import numpy as np

from .errors import ConfigurationError
from . import typehints as t


WINDOWS = ('hann', 'hamming', 'blackman')


def ispowerof2(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


def _check_size(size: int, stage="analysis", param="fftsize") -> None:
    if not ispowerof2(size) or size < 4:
        raise ConfigurationError(f"size must be a power of two >= 4, got {size}",
                                 stage=stage, param=param)


@lru_cache(maxsize=32)
def _window(kind: str, size: int) -> np.ndarray:
    x = np.arange(size) / (size - 1)
    if kind == 'hann':
        w = 0.5 - 0.5 * np.cos(2 * np.pi * x)
    elif kind == 'hamming':
        w = 0.54 - 0.46 * np.cos(2 * np.pi * x)
    elif kind == 'blackman':
        w = 0.42 - 0.5 * np.cos(2 * np.pi * x) + 0.08 * np.cos(4 * np.pi * x)
    else:
        raise ConfigurationError(f"window should be one of {WINDOWS}, got {kind}",
                                 param="window")
    w.flags.writeable = False
    return w


def makewindow(kind: str, size: int) -> np.ndarray:
    """
    Returns a (read-only) symmetric window of the given kind

    kind: one of 'hann', 'hamming', 'blackman'
    size: the size of the window, in samples
    """
    return _window(kind, size)


def window_gain(window: np.ndarray) -> float:
    """
    The factor converting the N-normalized magnitude of a windowed
    sinusoid into the amplitude of the sinusoid itself
    """
    return 2.0 / float(np.mean(window))


@lru_cache(maxsize=32)
def _bitreverse_indices(size: int) -> np.ndarray:
    numbits = size.bit_length() - 1
    idx = np.arange(size)
    rev = np.zeros(size, dtype=np.int64)
    for _ in range(numbits):
        rev = (rev << 1) | (idx & 1)
        idx = idx >> 1
    return rev


@lru_cache(maxsize=32)
def _twiddles(size: int) -> t.List[np.ndarray]:
    """
    One array of twiddle factors per butterfly stage, for stage
    block lengths 2, 4, ..., size
    """
    out = []
    blocklen = 2
    while blocklen <= size:
        half = blocklen // 2
        out.append(np.exp(-2j * np.pi * np.arange(half) / blocklen))
        blocklen *= 2
    return out


def fft(frames: np.ndarray) -> np.ndarray:
    """
    Iterative radix-2 decimation-in-time FFT

    frames: a 1D array of size N or a 2D array (numframes, N), with N
            a power of two

    Returns the complex spectrum, same shape as frames
    """
    frames = np.asarray(frames)
    size = frames.shape[-1]
    _check_size(size)
    lead = frames.shape[:-1]
    x = frames[..., _bitreverse_indices(size)].astype(complex)
    blocklen = 2
    for tw in _twiddles(size):
        half = blocklen // 2
        x = x.reshape(lead + (size // blocklen, blocklen))
        even = x[..., :half]
        odd = x[..., half:] * tw
        x = np.concatenate((even + odd, even - odd), axis=-1)
        blocklen *= 2
    return x.reshape(lead + (size,))


def magnitude_spectrum(frames: np.ndarray, window: np.ndarray) -> np.ndarray:
    """
    Window the frame(s) and return the N/2 magnitudes from 0 Hz up to
    (excluding) nyquist, normalized by N

    frames: 1D array of size N or 2D array (numframes, N)
    window: an array of size N (see makewindow)
    """
    frames = np.asarray(frames, dtype=float)
    size = frames.shape[-1]
    _check_size(size)
    if len(window) != size:
        raise ConfigurationError(f"window size ({len(window)}) differs from "
                                 f"frame size ({size})", param="window")
    spectrum = fft(frames * window)
    return np.abs(spectrum[..., :size // 2]) / size

import numpy as np
import pitchtools as pt
import pitchtools.vectorized as ptv
from .config import getconfig
from .const import MAGFLOOR
from . import typehints as t


def checktype(x, types):
    if not isinstance(x, types):
        raise TypeError(f"Expected {types} but got {x} ({type(x)})")


def aslist(x):
    if isinstance(x, list):
        return x
    return list(x)


def asfloatarray(a: t.U[t.Seq, np.ndarray]) -> np.ndarray:
    if isinstance(a, np.ndarray) and a.dtype == np.float64:
        return a
    return np.asarray(a, dtype=float)


def _refratio(a4: float = None) -> float:
    """
    The ratio between the reference frequency used by pitchtools and a4
    (config['A4'] if not given)
    """
    return pt.m2f(69) / getconfig().override(a4, 'A4')


def f2m(freq: float, a4: float = None) -> float:
    """
    Convert a frequency in Hz to a midi-note

    a4: reference frequency, taken from config['A4'] if not given
    """
    return pt.f2m(freq * _refratio(a4))


def m2f(midinote: float, a4: float = None) -> float:
    """ Convert a midi-note to a frequency (see f2m) """
    return pt.m2f(midinote) / _refratio(a4)


def f2m_np(freqs: np.ndarray, a4: float = None) -> np.ndarray:
    return ptv.f2m(np.asarray(freqs, dtype=float) * _refratio(a4))


def m2f_np(midinotes: np.ndarray, a4: float = None) -> np.ndarray:
    midinotes = np.asarray(midinotes, dtype=float)
    return ptv.m2f(midinotes, out=np.empty_like(midinotes)) / _refratio(a4)


def amp2db(amp: float) -> float:
    """ Like pitchtools.amp2db, with amplitudes floored at 1e-10 """
    return pt.amp2db(max(float(amp), MAGFLOOR))


def rms(samples: np.ndarray) -> float:
    if len(samples) == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(samples, dtype=float))))


def rmsdb(samples: np.ndarray) -> float:
    return float(amp2db(rms(samples)))


def downmix(samples: np.ndarray) -> np.ndarray:
    """
    Reduce a (numframes, numchannels) array to mono by averaging
    the channels. Mono input is returned as a float array
    """
    samples = np.asarray(samples, dtype=float)
    if samples.ndim == 1:
        return samples
    if samples.ndim != 2:
        raise ValueError(f"Expected a 1D or 2D array, got shape {samples.shape}")
    return samples.mean(axis=1)

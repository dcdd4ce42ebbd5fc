"""
Peak picking over magnitude spectra
"""
import numpy as np
import pitchtools as pt
import pitchtools.vectorized as ptv
import logging

from .const import MAGFLOOR
from . import typehints as t


logger = logging.getLogger("sinetrck")


class Peak(t.NamedTuple):
    freq: float
    amp: float     # dB


def parabolic_peak(alpha, beta, gamma):
    """
    Fit a parabola through three magnitudes around a local maximum

    alpha, beta, gamma: magnitudes at bins k-1, k, k+1. Can be floats or
                        arrays of the same shape

    Returns (p, mag), where p is the offset of the vertex in bins
    (within [-0.5, 0.5]) and mag the interpolated magnitude at the vertex.
    If the three values do not describe a concave peak, p is 0
    """
    alpha = np.asarray(alpha, dtype=float)
    beta = np.asarray(beta, dtype=float)
    gamma = np.asarray(gamma, dtype=float)
    denom = alpha - 2*beta + gamma
    concave = denom < -1e-10
    safedenom = np.where(concave, denom, -1.0)
    p = np.where(concave, 0.5 * (alpha - gamma) / safedenom, 0.0)
    p = np.clip(p, -0.5, 0.5)
    mag = beta - 0.25 * (alpha - gamma) * p
    if p.ndim == 0:
        return float(p), float(mag)
    return p, mag


def find_peaks(mags: np.ndarray,
               sr: int,
               fftsize: int,
               minamp: float = -60.,
               freqmin: float = 0.,
               freqmax: float = float("inf"),
               maxpeaks: int = 100
               ) -> t.List[Peak]:
    """
    Find the spectral peaks of one frame

    mags: the magnitude spectrum (fftsize/2 bins, linear)
    sr: samplerate of the analyzed signal
    fftsize: the size of the fft which produced mags
    minamp: amplitude floor, in dB
    freqmin, freqmax: peaks outside this band are discarded
    maxpeaks: max. number of peaks returned

    Returns a list of Peaks, loudest first

    A bin is a candidate if it is louder than the floor and than each of
    the two bins at each side. Frequency and amplitude are refined by
    parabolic interpolation
    """
    mags = np.asarray(mags, dtype=float)
    n = len(mags)
    if n < 5:
        return []
    center = mags[2:n-2]
    candidates = ((center > pt.db2amp(minamp)) &
                  (center > mags[1:n-3]) & (center > mags[3:n-1]) &
                  (center > mags[0:n-4]) & (center > mags[4:n]))
    bins = np.nonzero(candidates)[0] + 2
    if len(bins) == 0:
        return []
    p, mag = parabolic_peak(mags[bins-1], mags[bins], mags[bins+1])
    freqs = (bins + p) * sr / fftsize
    amps = ptv.amp2db(np.maximum(mag, MAGFLOOR))
    inband = (freqs >= freqmin) & (freqs <= freqmax)
    freqs, amps = freqs[inband], amps[inband]
    order = np.argsort(-amps, kind='stable')[:maxpeaks]
    return [Peak(float(freqs[i]), float(amps[i])) for i in order]

"""
Resynthesis of a set of partials, optionally mixed with modeled noise
"""
import math
import numpy as np
import logging

from .additive import render_partials
from .config import getconfig
from .errors import ConfigurationError
from .noise import NoiseEnvelope, synthesize_noise
from .partial import Partial
from . import typehints as t


logger = logging.getLogger("sinetrck")


def _default_end(partials: t.List[Partial], noise: t.Opt[NoiseEnvelope]) -> float:
    end = max((p.t1 for p in partials), default=0.)
    if noise is not None:
        end = max(end, noise.duration)
    return end


def normalize_peak(samples: np.ndarray, peak=0.9) -> np.ndarray:
    """
    Scale samples in place so that its max. absolute value is `peak`.
    Silent buffers are left untouched
    """
    maxpeak = np.abs(samples).max() if len(samples) else 0.
    if maxpeak > 0:
        samples *= peak / maxpeak
    return samples


def synthesize(partials: t.Iter[Partial],
               sr: int = 44100,
               rate: float = 1.0,
               noise: NoiseEnvelope = None,
               mix: float = None,
               start: float = 0.,
               end: float = None,
               normalize: bool = None,
               headroom: float = None,
               fadetime: float = None,
               seed: int = None
               ) -> np.ndarray:
    """
    Render partials (and optionally a noise envelope) as samples

    partials: the partials to render
    sr: the samplerate of the output
    rate: playback rate. A rate of 0.5 doubles the duration without
          changing the pitch
    noise: if given, a NoiseEnvelope rendered as band-limited noise
    mix: the level of the noise (0-1). Default: config['noise.mix']
    start: the source time of the first sample
    end: the source time where rendering ends. If not given, the end of
         the last partial (or of the noise envelope, if longer)
    normalize: if True, scale the output so that its peak is
               config['synthesis.normpeak']. Default: config['synthesis.normalize']
    headroom: gain applied to every partial. Default: config['synthesis.headroom']
    fadetime: duration of the half-cosine ramps at each end of a partial.
              Default: config['synthesis.fadetime']
    seed: seed for the noise generator

    Returns a 1D float array of floor((end-start)/rate*sr) samples

    Example::

        >>> samples = synthesize(spectrum, sr=44100, rate=0.5)
    """
    config = getconfig()
    mix = config.override(mix, 'noise.mix')
    donormalize = config.override(normalize, 'synthesis.normalize')
    headroom = config.override(headroom, 'synthesis.headroom')
    fadetime = config.override(fadetime, 'synthesis.fadetime')
    if rate <= 0:
        raise ConfigurationError(f"rate should be positive, got {rate}",
                                 stage="synthesis", param="rate")
    if sr <= 0:
        raise ConfigurationError(f"samplerate should be positive, got {sr}",
                                 stage="synthesis", param="sr")
    if not 0 <= mix <= 1:
        raise ConfigurationError(f"mix should be between 0 and 1, got {mix}",
                                 stage="synthesis", param="mix")
    partials = list(partials)
    if end is None:
        end = _default_end(partials, noise)
    elif end <= start:
        raise ConfigurationError(f"end ({end}) should be after start ({start})",
                                 stage="synthesis", param="end")
    numsamples = max(0, int(math.floor((end - start) / rate * sr)))
    out = render_partials(partials, numsamples, sr, rate=rate, start=start,
                          headroom=headroom, fadetime=fadetime)
    if noise is not None and mix > 0:
        rng = np.random.default_rng(seed)
        out += synthesize_noise(noise, numsamples, sr, rate=rate, mix=mix,
                                start=start, rng=rng)
    if donormalize:
        if numsamples and not np.any(out):
            logger.warning("Synthesis produced silence, nothing to normalize")
        normalize_peak(out, config['synthesis.normpeak'])
    return out

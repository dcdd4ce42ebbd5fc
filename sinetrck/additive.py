"""
Phase-accumulating oscillators

Everything here is stateless: partials are rendered into a buffer given
a samplerate, a playback rate and the source time corresponding to the
first sample of the buffer. The phase of each oscillator is obtained by
integrating its instantaneous frequency (see phase_fold), which keeps it
continuous across frequency and amplitude changes
"""
import numpy as np
import pitchtools.vectorized as ptv
import logging

from .partial import Partial
from . import typehints as t


logger = logging.getLogger("sinetrck")

TWOPI = 2 * np.pi


def phase_fold(increments: np.ndarray,
               phase0: t.U[float, np.ndarray] = 0.0,
               blocksize: int = 4096
               ) -> t.Tup[np.ndarray, t.U[float, np.ndarray]]:
    """
    Accumulate phase increments sample by sample

    increments: the phase increment (in radians) applied *after* each sample.
                A 1D array (numsamples,) or 2D (numsamples, numoscils)
    phase0: the phase of the first sample (one per oscillator for 2D input)
    blocksize: the phase is wrapped to [0, 2pi) at the end of each block

    Returns (phases, lastphase), where phases[i] is the phase at sample i
    (before its own increment is applied) and lastphase is the phase
    following the last sample, to be used as phase0 of a subsequent call
    """
    increments = np.asarray(increments, dtype=float)
    phases = np.empty_like(increments)
    phase = np.mod(phase0, TWOPI)
    for start in range(0, len(increments), blocksize):
        block = increments[start:start+blocksize]
        acc = np.cumsum(block, axis=0)
        out = phases[start:start+len(block)]
        out[0] = phase
        out[1:] = phase + acc[:-1]
        np.mod(out, TWOPI, out=out)
        phase = np.mod(phase + acc[-1], TWOPI)
    return phases, phase


def accumulate_phase(freqs: np.ndarray,
                     sr: int,
                     phase0=0.0,
                     steps: np.ndarray = None
                     ) -> t.Tup[np.ndarray, float]:
    """
    Integrate an instantaneous frequency curve into phase

    freqs: the frequency at each rendered sample, in Hz
    sr: the samplerate
    phase0: phase at the first sample
    steps: if given, the distance in samples from each rendered sample to
           the next one. Samples skipped over (steps > 1) still advance
           the phase, using the frequency of the sample after the gap

    Returns (phases, lastphase) as phase_fold
    """
    freqs = np.asarray(freqs, dtype=float)
    increments = freqs * (TWOPI / sr)
    if steps is not None and len(freqs) > 1:
        gaps = np.asarray(steps[:len(freqs)-1]) - 1
        if np.any(gaps > 0):
            increments = increments.copy()
            increments[:-1] += gaps * increments[1:]
    return phase_fold(increments, phase0)


class PartialSamples(t.NamedTuple):
    """
    The per-sample trajectory of a partial

    indexes: output sample index of each rendered sample
    freqs: instantaneous frequency (Hz)
    amps: instantaneous amplitude (dB)
    startidx: sample index of the first breakpoint
    endidx: sample index of the last breakpoint
    """
    indexes: np.ndarray
    freqs: np.ndarray
    amps: np.ndarray
    startidx: int
    endidx: int


def partial_samples(partial: Partial, sr: int, rate=1.0, start=0.0) -> t.Opt[PartialSamples]:
    """
    Interpolate the breakpoints of a partial at every output sample

    The breakpoint at time t falls on sample floor((t - start) / rate * sr).
    Frequency and amplitude are interpolated linearly within each segment,
    segments falling within one sample are skipped

    Returns None if the partial spans less than one sample
    """
    idxs = np.floor((partial.times - start) / rate * sr).astype(np.int64)
    lengths = np.diff(idxs)
    keep = lengths > 0
    if not np.any(keep):
        return None
    lengths = lengths[keep]
    segstarts = idxs[:-1][keep]
    freqs, amps = partial.freqs, partial.amps
    f0 = freqs[:-1][keep]
    df = np.diff(freqs)[keep]
    a0 = amps[:-1][keep]
    da = np.diff(amps)[keep]
    segidx = np.repeat(np.arange(len(lengths)), lengths)
    offsets = np.arange(lengths.sum()) - np.repeat(np.cumsum(lengths) - lengths, lengths)
    frac = offsets / lengths[segidx]
    return PartialSamples(indexes=segstarts[segidx] + offsets,
                          freqs=f0[segidx] + df[segidx] * frac,
                          amps=a0[segidx] + da[segidx] * frac,
                          startidx=int(idxs[0]),
                          endidx=int(idxs[-1]))


def fade_envelope(indexes: np.ndarray, startidx: int, endidx: int, fadesamples: int) -> np.ndarray:
    """
    Half-cosine ramps of fadesamples at both ends of a partial
    """
    env = np.ones(len(indexes))
    if fadesamples <= 0:
        return env
    fromstart = indexes - startidx
    mask = fromstart < fadesamples
    env[mask] *= 0.5 * (1 - np.cos(np.pi * fromstart[mask] / fadesamples))
    fromend = endidx - indexes
    mask = fromend < fadesamples
    env[mask] *= 0.5 * (1 - np.cos(np.pi * fromend[mask] / fadesamples))
    return env


def render_partial(partial: Partial,
                   out: np.ndarray,
                   sr: int,
                   rate=1.0,
                   start=0.0,
                   headroom=0.1,
                   fadetime=0.005
                   ) -> bool:
    """
    Render one partial, adding it to out

    out: the output buffer. Its first sample corresponds to source time `start`
    sr: the samplerate of out
    rate: playback rate. Times are divided by it, frequencies are untouched
    headroom: linear gain applied to the amplitude of the partial
    fadetime: duration of the attack and release ramps, in seconds

    Returns True if any samples were written to out
    """
    samples = partial_samples(partial, sr=sr, rate=rate, start=start)
    if samples is None:
        return False
    idxs = samples.indexes
    inside = (idxs >= 0) & (idxs < len(out))
    if not np.any(inside):
        return False
    # the phase is integrated over the whole partial, also over the
    # samples which fall outside of the buffer
    phases, _ = accumulate_phase(samples.freqs, sr, steps=np.diff(idxs))
    amps = ptv.db2amp(samples.amps) * headroom
    amps *= fade_envelope(idxs, samples.startidx, samples.endidx, int(sr * fadetime))
    out[idxs[inside]] += (amps * np.sin(phases))[inside]
    return True


def render_partials(partials: t.Iter[Partial],
                    numsamples: int,
                    sr: int,
                    rate=1.0,
                    start=0.0,
                    headroom=0.1,
                    fadetime=0.005
                    ) -> np.ndarray:
    """
    Render the sinusoidal part of a set of partials

    Returns a buffer of numsamples, where sample 0 corresponds to the source
    time `start`. See render_partial
    """
    out = np.zeros(numsamples, dtype=float)
    numrendered = 0
    for partial in partials:
        if render_partial(partial, out, sr=sr, rate=rate, start=start,
                          headroom=headroom, fadetime=fadetime):
            numrendered += 1
    logger.debug(f"Rendered {numrendered} partials, {numsamples} samples (sr={sr}, rate={rate})")
    return out

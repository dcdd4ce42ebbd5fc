"""
Transformations over a selection of partials

Every function takes a seq. of Partials (the selection) and returns a list
of new Partials which should replace the selection as a whole (see
Spectrum.replaced and Session.apply). Partials derived from an input
partial keep its id, newly created partials have an unset id.

Transformations which normalize the selection by its time or frequency
range (rotate, explode, perpendicular, amp_envelope, spectral_delay) return
the selection unchanged when that range is zero
"""
from __future__ import annotations
import math
import numpy as np
import bpf4 as bpf
import pitchtools as pt
import logging

from .const import UNSETID, MINFREQ, MAXFREQ_HARMONICS
from .errors import ConfigurationError, DegenerateInputError
from .partial import Partial
from .util import f2m_np, m2f_np, aslist
from . import typehints as t


logger = logging.getLogger("sinetrck")

Curve = t.U[bpf.BpfInterface, t.Seq[t.Tup[float, float]]]


SCALES = {
    'chromatic': (0, 1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 11),
    'major': (0, 2, 4, 5, 7, 9, 11),
    'minor': (0, 2, 3, 5, 7, 8, 10),
    'harmonicminor': (0, 2, 3, 5, 7, 8, 11),
    'melodicminor': (0, 2, 3, 5, 7, 9, 11),
    'dorian': (0, 2, 3, 5, 7, 9, 10),
    'phrygian': (0, 1, 3, 5, 7, 8, 10),
    'lydian': (0, 2, 4, 6, 7, 9, 11),
    'mixolydian': (0, 2, 4, 5, 7, 9, 10),
    'locrian': (0, 1, 3, 5, 6, 8, 10),
    'pentatonicmajor': (0, 2, 4, 7, 9),
    'pentatonicminor': (0, 3, 5, 7, 10),
    'blues': (0, 3, 5, 6, 7, 10),
    'fifths': (0, 7),
    'fourths': (0, 5),
    'octaves': (0,)
}


#######################################################################
#
# helpers
#
#######################################################################


def _fail(msg, param):
    raise ConfigurationError(msg, stage="transform", param=param)


def _timerange(partials: t.List[Partial]) -> t.Tup[float, float]:
    return min(p.t0 for p in partials), max(p.t1 for p in partials)


def _freqrange(partials: t.List[Partial]) -> t.Tup[float, float]:
    return min(p.minfreq for p in partials), max(p.maxfreq for p in partials)


def _rebuild(partial: Partial, times, freqs, amps=None) -> Partial:
    """
    Build a partial from possibly unsorted breakpoints, keeping the id.
    Times are clamped to 0 and frequencies to MINFREQ
    """
    amps = partial.amps if amps is None else amps
    times = np.maximum(np.asarray(times, dtype=float), 0.)
    freqs = np.maximum(np.asarray(freqs, dtype=float), MINFREQ)
    order = np.argsort(times, kind='stable')
    return partial.clone(times=times[order], freqs=freqs[order],
                         amps=np.asarray(amps, dtype=float)[order])


def _asbpf(curve: Curve):
    """
    Convert a seq. of (x, y) pairs to a linear bpf. Bpfs are returned as is
    """
    if isinstance(curve, bpf.BpfInterface):
        return curve
    pairs = sorted(curve)
    if not pairs:
        raise DegenerateInputError("A curve needs at least one point")
    if len(pairs) == 1:
        return bpf.core.Const(float(pairs[0][1]))
    xs, ys = zip(*pairs)
    return bpf.core.Linear(np.asarray(xs, dtype=float), np.asarray(ys, dtype=float))


def _evalcurve(curve, xs: np.ndarray) -> np.ndarray:
    """
    Evaluate curve at xs, holding its first/last value outside its range
    """
    if isinstance(curve, bpf.core.Linear):
        X, _ = curve.points()
        xs = np.clip(xs, X[0], X[-1])
    return np.asarray(curve.map(np.ascontiguousarray(xs, dtype=float)))


def _selection(partials) -> t.List[Partial]:
    partials = aslist(partials)
    if not partials:
        raise DegenerateInputError("The selection is empty")
    return partials


#######################################################################
#
# pitch and time
#
#######################################################################


def transpose(partials: t.Iter[Partial], ratio: float) -> t.List[Partial]:
    """
    Multiply all frequencies by ratio
    """
    if ratio <= 0:
        _fail(f"ratio should be positive, got {ratio}", "ratio")
    return [p.transposed(ratio) for p in partials]


def timestretch(partials: t.Iter[Partial], factor: float, anchor='start') -> t.List[Partial]:
    """
    Stretch the selection in time

    factor: stretch factor (2 = twice as long)
    anchor: the point which stays fixed, one of 'start', 'center', 'end'
    """
    if factor <= 0:
        _fail(f"factor should be positive, got {factor}", "factor")
    partials = _selection(partials)
    t0, t1 = _timerange(partials)
    if anchor == 'start':
        anchortime = t0
    elif anchor == 'center':
        anchortime = (t0 + t1) / 2
    elif anchor == 'end':
        anchortime = t1
    else:
        _fail(f"anchor should be one of 'start', 'center', 'end', got {anchor}", "anchor")
    return [_rebuild(p, anchortime + (p.times - anchortime) * factor, p.freqs)
            for p in partials]


def shift(partials: t.Iter[Partial], dt=0., df=0.) -> t.List[Partial]:
    """
    Move the selection by dt seconds and df Hz
    """
    return [_rebuild(p, p.times + dt, p.freqs + df) for p in partials]


def invert(partials: t.Iter[Partial]) -> t.List[Partial]:
    """ Mirror the frequencies around the center of the selection's range """
    partials = _selection(partials)
    minfreq, maxfreq = _freqrange(partials)
    center = (minfreq + maxfreq) / 2
    return [_rebuild(p, p.times, 2 * center - p.freqs) for p in partials]


def reverse(partials: t.Iter[Partial]) -> t.List[Partial]:
    """ Mirror the selection in time, around its center """
    partials = _selection(partials)
    t0, t1 = _timerange(partials)
    center = (t0 + t1) / 2
    return [p.clone(times=(2 * center - p.times)[::-1], freqs=p.freqs[::-1], amps=p.amps[::-1])
            for p in partials]


#######################################################################
#
# geometric transformations
#
#######################################################################


def rotate(partials: t.Iter[Partial], degrees: float, pivot='center') -> t.List[Partial]:
    """
    Rotate the selection in the time/frequency plane

    Both axes are normalized by the range of the selection, so that a
    rotation of 90 degrees maps the time extent onto the frequency extent

    degrees: the angle of rotation, counterclockwise
    pivot: 'center', 'start' or 'end'. The pivot frequency is always the
           center of the frequency range

    If the selection has no extent in time or in frequency it is
    returned unchanged
    """
    partials = _selection(partials)
    t0, t1 = _timerange(partials)
    f0, f1 = _freqrange(partials)
    timerange, freqrange = t1 - t0, f1 - f0
    if timerange <= 0 or freqrange <= 0:
        logger.debug("rotate: the selection has no time or frequency range, nothing to do")
        return partials
    if degrees % 360 == 0:
        return partials
    if pivot == 'start':
        pivottime = t0
    elif pivot == 'end':
        pivottime = t1
    elif pivot == 'center':
        pivottime = (t0 + t1) / 2
    else:
        _fail(f"pivot should be one of 'start', 'center', 'end', got {pivot}", "pivot")
    pivotfreq = (f0 + f1) / 2
    rad = math.radians(degrees)
    cosa, sina = math.cos(rad), math.sin(rad)
    out = []
    for p in partials:
        normtimes = (p.times - pivottime) / timerange
        normfreqs = (p.freqs - pivotfreq) / freqrange
        times = pivottime + (normtimes * cosa - normfreqs * sina) * timerange
        freqs = pivotfreq + (normtimes * sina + normfreqs * cosa) * freqrange
        out.append(_rebuild(p, times, freqs))
    return out


def perpendicular(partials: t.Iter[Partial]) -> t.List[Partial]:
    """
    Rotate the selection 90 degrees clockwise within its own bounding
    box: normalized time becomes frequency and normalized frequency becomes
    time. A selection without time or frequency range is returned unchanged
    """
    partials = _selection(partials)
    t0, t1 = _timerange(partials)
    f0, f1 = _freqrange(partials)
    timerange, freqrange = t1 - t0, f1 - f0
    if timerange <= 0 or freqrange <= 0:
        logger.debug("perpendicular: the selection has no time or frequency range")
        return partials
    out = []
    for p in partials:
        normtimes = (p.times - t0) / timerange
        normfreqs = (p.freqs - f0) / freqrange
        out.append(_rebuild(p, t0 + normfreqs * timerange, f0 + (1 - normtimes) * freqrange))
    return out


def explode(partials: t.Iter[Partial], order='ascending', rng: np.random.Generator = None
            ) -> t.List[Partial]:
    """
    Distribute the start of each partial evenly across the time range of
    the selection

    order: the order in which partials are laid out: 'ascending' or
           'descending' (by mean frequency), 'random' or 'original'
           (by start time)

    Selections with less than two partials or without time range are
    returned unchanged
    """
    partials = _selection(partials)
    if len(partials) < 2:
        return partials
    t0, t1 = _timerange(partials)
    timerange = t1 - t0
    if timerange <= 0:
        logger.debug("explode: the selection has no time range, nothing to do")
        return partials
    if order == 'ascending':
        ordered = sorted(partials, key=lambda p: p.meanfreq)
    elif order == 'descending':
        ordered = sorted(partials, key=lambda p: p.meanfreq, reverse=True)
    elif order == 'random':
        rng = rng or np.random.default_rng()
        ordered = [partials[i] for i in rng.permutation(len(partials))]
    elif order == 'original':
        ordered = sorted(partials, key=lambda p: p.t0)
    else:
        _fail(f"order should be one of 'ascending', 'descending', 'random', "
              f"'original', got {order}", "order")
    n = len(ordered)
    return [p.shifted(t0 + i / (n - 1) * timerange - p.t0) for i, p in enumerate(ordered)]


#######################################################################
#
# quantization
#
#######################################################################


def quantize_time(partials: t.Iter[Partial], grid: float) -> t.List[Partial]:
    """ Snap the time of every breakpoint to a grid (in seconds) """
    if grid <= 0:
        _fail(f"grid should be positive, got {grid}", "grid")
    return [_rebuild(p, np.round(p.times / grid) * grid, p.freqs) for p in partials]


def quantize_bpm(partials: t.Iter[Partial], bpm: float, division=4) -> t.List[Partial]:
    """
    Snap the time of every breakpoint to a rhythmic grid

    bpm: tempo, in beats per minute
    division: 4 = quarter notes, 8 = eighth notes, ...; 3 and 6 divide the
              beat in triplets and sextuplets
    """
    if bpm <= 0 or division <= 0:
        _fail(f"bpm and division should be positive, got {bpm}, {division}", "bpm")
    beat = 60 / bpm
    if division in (3, 6):
        grid = beat / division
    else:
        grid = beat * 4 / division
    return quantize_time(partials, grid)


def quantize_freq(partials: t.Iter[Partial], grid: float, mode='hz', a4: float = None
                  ) -> t.List[Partial]:
    """
    Snap the frequency of every breakpoint to a grid

    grid: the size of the grid, in Hz (mode 'hz') or in semitones (mode 'semitones')
    mode: 'hz' or 'semitones'. Semitones are measured from A4
    """
    if grid <= 0:
        _fail(f"grid should be positive, got {grid}", "grid")
    out = []
    for p in partials:
        if mode == 'hz':
            freqs = np.round(p.freqs / grid) * grid
        elif mode == 'semitones':
            notes = f2m_np(p.freqs, a4)
            freqs = m2f_np(np.round(notes / grid) * grid, a4)
        else:
            _fail(f"mode should be 'hz' or 'semitones', got {mode}", "mode")
        out.append(_rebuild(p, p.times, freqs))
    return out


def _snap_to_scale(midinotes: np.ndarray, root: int, intervals: t.Seq[int]) -> np.ndarray:
    pitchclass = midinotes % 12
    fromroot = (pitchclass - root) % 12
    intervals = np.asarray(intervals, dtype=float)
    dist = np.abs(fromroot[:, np.newaxis] - intervals)
    dist = np.minimum(dist, 12 - dist)
    target = root + intervals[np.argmin(dist, axis=1)]
    target = np.where(target > pitchclass + 6, target - 12, target)
    target = np.where(target < pitchclass - 6, target + 12, target)
    return midinotes + target - pitchclass


def quantize_scale(partials: t.Iter[Partial], root=0, scale='major', a4: float = None
                   ) -> t.List[Partial]:
    """
    Snap every breakpoint to the nearest pitch of a scale

    root: the root of the scale as pitch class (0=C, 1=C#, ..., 11=B)
    scale: one of the names in SCALES
    """
    intervals = SCALES.get(scale)
    if intervals is None:
        _fail(f"Unknown scale {scale}, should be one of {list(SCALES)}", "scale")
    out = []
    for p in partials:
        freqs = m2f_np(_snap_to_scale(f2m_np(p.freqs, a4), root, intervals), a4)
        out.append(_rebuild(p, p.times, freqs))
    return out


#######################################################################
#
# generators
#
#######################################################################


def add_harmonics(partials: t.Iter[Partial], numharmonics=4, rolloff=6., oddonly=False
                  ) -> t.List[Partial]:
    """
    Add harmonics to each partial of the selection

    numharmonics: number of harmonics to add (harmonics 2 to numharmonics+1)
    rolloff: amplitude drop, in dB per octave above the partial
    oddonly: only add odd harmonics

    Returns the selection followed by the new harmonics. Breakpoints
    above 20 kHz are skipped, harmonics left with less than two
    breakpoints are not created
    """
    partials = aslist(partials)
    out = list(partials)
    for p in partials:
        for h in range(2, numharmonics + 2):
            if oddonly and h % 2 == 0:
                continue
            freqs = p.freqs * h
            mask = freqs <= MAXFREQ_HARMONICS
            if mask.sum() < 2:
                continue
            amps = p.amps - rolloff * math.log2(h)
            out.append(Partial(p.times[mask], freqs[mask], amps[mask], id=UNSETID))
    return out


def chorus(partials: t.Iter[Partial], voices=3, detune=10., timespread=20., ampspread=3.,
           rng: np.random.Generator = None) -> t.List[Partial]:
    """
    Add detuned copies of each partial

    voices: total number of voices, including the original
    detune: max. detuning, in cents
    timespread: max. time offset, in ms
    ampspread: max. attenuation, in dB

    Returns the selection followed by the new voices
    """
    rng = rng or np.random.default_rng()
    partials = aslist(partials)
    out = list(partials)
    half = (voices - 1) / 2 or 1
    for p in partials:
        for v in range(1, voices):
            offset = (v - (voices - 1) / 2) / half
            timeoffset = timespread / 1000 * offset * (rng.random() * 0.5 + 0.5)
            voice = Partial(np.maximum(p.times + timeoffset, 0.),
                            p.freqs * pt.interval2ratio(detune * offset / 100),
                            p.amps - ampspread * abs(offset))
            out.append(voice)
    return out


def spectral_delay(partials: t.Iter[Partial], maxdelay=0.2, freqlow=100., freqhigh=5000.,
                   mode='lowfirst', repeats=0, decay=-6., rng: np.random.Generator = None
                   ) -> t.List[Partial]:
    """
    Delay each partial according to its mean frequency

    maxdelay: max. delay, in seconds
    freqlow, freqhigh: the frequency range mapped (logarithmically) to 0-maxdelay
    mode: 'lowfirst' (high partials are delayed most), 'highfirst' or 'random'
    repeats: number of echoes of each partial, spaced by maxdelay
    decay: gain (dB) added at each echo

    Returns the delayed selection followed by the echoes
    """
    rng = rng or np.random.default_rng()
    if freqlow <= 0 or freqhigh <= 0:
        _fail("freqlow and freqhigh should be positive", "freqlow")
    logrange = math.log(freqhigh / freqlow)
    out, echoes = [], []
    for p in partials:
        if mode == 'random':
            delay = rng.random() * maxdelay
        elif mode in ('lowfirst', 'highfirst'):
            if logrange == 0:
                norm = 0.
            else:
                norm = math.log(p.meanfreq / freqlow) / logrange
            if mode == 'highfirst':
                norm = 1 - norm
            delay = min(max(norm, 0.), 1.) * maxdelay
        else:
            _fail(f"mode should be one of 'lowfirst', 'highfirst', 'random', got {mode}", "mode")
        delayed = p.shifted(delay)
        out.append(delayed)
        for r in range(1, repeats + 1):
            echoes.append(Partial(delayed.times + maxdelay * r, delayed.freqs,
                                  delayed.amps + decay * r))
    return out + echoes


def spectral_reverb(partials: t.Iter[Partial], decaytime=2., diffusion=0.5, density=8,
                    damping=5000., predelay=0.02, mix=0.5,
                    rng: np.random.Generator = None) -> t.List[Partial]:
    """
    Simulate a reverb by adding delayed, attenuated reflections of each partial

    decaytime: time (s) for the reflections to decay, shortened for higher
               partials by exp(-freq/damping)
    diffusion: 0-1, randomness of delay times and frequencies
    density: number of reflections per partial
    predelay: delay of the first reflection, in seconds
    mix: 0-1, the dry signal is attenuated by up to 6 dB and the
         reflections decay up to -60 dB

    Returns the (attenuated) selection followed by the reflections
    """
    rng = rng or np.random.default_rng()
    out, reflections = [], []
    for p in partials:
        effdecay = decaytime * math.exp(-p.meanfreq / damping)
        dry = p.gain(-6 * mix) if mix > 0 else p
        out.append(dry)
        for i in range(density):
            progress = (i + 1) / density
            delay = predelay + effdecay * progress**2
            delay += diffusion * effdecay * 0.3 * (rng.random() - 0.5)
            freqratio = 1 + diffusion * 0.02 * (rng.random() - 0.5)
            amps = dry.amps - 60 * progress * mix
            if amps.mean() <= -60:
                continue
            reflections.append(Partial(np.maximum(dry.times + delay, 0.),
                                       dry.freqs * freqratio, amps))
    return out + reflections


#######################################################################
#
# modulation and envelopes
#
#######################################################################


def vibrato(partials: t.Iter[Partial], rate=5., depth=20., tremrate=0., tremdepth=0.
            ) -> t.List[Partial]:
    """
    Add a vibrato (frequency modulation) and/or tremolo (amplitude modulation)

    rate: vibrato rate, in Hz
    depth: vibrato depth, in cents
    tremrate: tremolo rate, in Hz
    tremdepth: tremolo depth, in dB

    Partials are first resampled at (at least) 50 breakpoints per second
    """
    out = []
    for p in partials:
        if p.numpoints < 2 or p.duration <= 0:
            out.append(p)
            continue
        p = p.resampled(max(p.numpoints, math.ceil(p.duration * 50)))
        reltimes = p.times - p.t0
        pitches = f2m_np(p.freqs) + depth / 100 * np.sin(2 * np.pi * rate * reltimes)
        freqs = m2f_np(pitches)
        amps = p.amps + tremdepth * np.sin(2 * np.pi * tremrate * reltimes)
        out.append(p.clone(freqs=freqs, amps=amps))
    return out


def freeze(partials: t.Iter[Partial], duration: float = None) -> t.List[Partial]:
    """
    Hold the first frequency of each partial along its whole duration

    duration: if given and longer than a partial, the partial is extended
              to start + duration, holding its last amplitude

    Partials with less than two breakpoints or without duration are
    left unchanged
    """
    out = []
    for p in partials:
        if p.numpoints < 2 or p.duration <= 0:
            out.append(p)
            continue
        times, amps = p.times, p.amps
        if duration is not None and duration > p.duration:
            times = np.append(times, p.t0 + duration)
            amps = np.append(amps, amps[-1])
        out.append(p.clone(times=times, freqs=np.full(len(times), p.freqs[0]), amps=amps))
    return out


def smear(partials: t.Iter[Partial], amount=0.5) -> t.List[Partial]:
    """
    Smooth the frequency and amplitude of each partial

    amount: 0-1, the size of the smoothing window relative to the
            number of breakpoints
    """
    out = []
    for p in partials:
        if p.numpoints < 2 or p.duration <= 0:
            out.append(p)
            continue
        p = p.resampled(max(10, math.ceil(p.duration * 50)))
        n = p.numpoints
        halfwin = max(1, int(amount * n * 0.3))
        offsets = np.arange(-halfwin, halfwin + 1)
        weights = np.exp(-0.5 * (offsets / (halfwin + 1))**2)
        # indices outside the partial hold its first/last breakpoint
        idxs = np.clip(np.arange(n)[:, np.newaxis] + offsets, 0, n - 1)
        wsum = weights.sum()
        freqs = (p.freqs[idxs] * weights).sum(axis=1) / wsum
        amps = (p.amps[idxs] * weights).sum(axis=1) / wsum
        out.append(p.clone(freqs=freqs, amps=amps))
    return out


def amp_envelope(partials: t.Iter[Partial], curve: Curve) -> t.List[Partial]:
    """
    Apply an amplitude envelope over the time range of the selection

    curve: a bpf or a seq. of (x, y) pairs, with x the normalized time of
           the selection (0-1) and y the gain, where y=0 adds 12 dB,
           y=0.5 leaves the amplitude untouched and y=1 attenuates by 24 dB
    """
    partials = _selection(partials)
    t0, t1 = _timerange(partials)
    if t1 - t0 <= 0:
        logger.debug("amp_envelope: the selection has no time range, nothing to do")
        return partials
    curve = _asbpf(curve)
    out = []
    for p in partials:
        ys = _evalcurve(curve, (p.times - t0) / (t1 - t0))
        gains = np.where(ys < 0.5, (0.5 - ys) * 24, -(ys - 0.5) * 48)
        out.append(p.clone(amps=p.amps + gains))
    return out


def equalize(partials: t.Iter[Partial], curve: Curve) -> t.List[Partial]:
    """
    Apply a gain depending on the frequency of each breakpoint

    curve: a bpf or a seq. of (freq, gain in dB) pairs, interpolated linearly.
           Gains of less than 0.1 dB are ignored
    """
    curve = _asbpf(curve)
    out = []
    for p in partials:
        gains = _evalcurve(curve, p.freqs)
        gains = np.where(np.abs(gains) > 0.1, gains, 0.)
        out.append(p.clone(amps=p.amps + gains))
    return out


def formant_shift(partials: t.Iter[Partial], semitones: float, preservepitch=False
                  ) -> t.List[Partial]:
    """
    Shift the spectral envelope of the selection

    semitones: the shift
    preservepitch: if False this is a plain transposition. Otherwise the
        lowest partial (taken as fundamental) keeps its frequency and all
        partials are tilted by 0.5 dB per octave above 200 Hz, up or
        down depending on the direction of the shift
    """
    partials = aslist(partials)
    if semitones == 0 or not partials:
        return partials
    ratio = pt.interval2ratio(semitones)
    if not preservepitch:
        return transpose(partials, ratio)
    fundamental = min(partials, key=lambda p: p.meanfreq)
    tilt = 0.5 if semitones > 0 else -0.5
    out = []
    for p in partials:
        harmonic = round(p.meanfreq / fundamental.meanfreq)
        freqs = p.freqs if harmonic <= 1 else p.freqs * ratio
        amps = p.amps + np.log2(freqs / 200) * tilt
        out.append(p.clone(freqs=freqs, amps=amps))
    return out


#######################################################################
#
# structure
#
#######################################################################


def merge(partials: t.Iter[Partial]) -> t.List[Partial]:
    """
    Merge all partials of the selection into one partial, with the
    breakpoints of all of them sorted by time
    """
    partials = _selection(partials)
    if len(partials) < 2:
        return partials
    data = np.concatenate([p.toarray() for p in partials])
    data = data[np.argsort(data[:, 0], kind='stable')]
    return [Partial.fromarray(data)]


def split(partials: t.Iter[Partial]) -> t.List[Partial]:
    """
    Split each partial with at least 4 breakpoints at its middle breakpoint.
    Both halves share that breakpoint, the first half keeps the id.
    Shorter partials are left untouched
    """
    out = []
    for p in partials:
        if p.numpoints < 4:
            out.append(p)
            continue
        mid = p.numpoints // 2
        data = p.toarray()
        out.append(Partial.fromarray(data[:mid + 1], id=p.id))
        out.append(Partial.fromarray(data[mid:]))
    return out

"""
Noise residual modeling

The residual is what is left of a signal after subtracting the sinusoidal
resynthesis of its partials. It is summarized as a time-varying envelope
of log-spaced bands, which can be turned back into band-limited noise
"""
import numpy as np
from numpy.lib.stride_tricks import sliding_window_view
import logging

from .additive import render_partials, phase_fold
from .config import getconfig
from .errors import ConfigurationError
from .fft import makewindow, ispowerof2
from .partial import Partial
from .util import rmsdb
from . import typehints as t


logger = logging.getLogger("sinetrck")

__all__ = [
    'NoiseBandFrame',
    'NoiseEnvelope',
    'band_edges',
    'band_centers',
    'analyze_noise',
    'synthesize_noise'
]

LOWFREQ = 20.0


def band_edges(numbands: int, sr: int) -> t.Tup[np.ndarray, np.ndarray]:
    """
    Returns (lows, highs), the edges of numbands log-spaced bands between
    20 Hz and nyquist
    """
    nyquist = sr / 2
    b = np.arange(numbands)
    ratio = nyquist / LOWFREQ
    return LOWFREQ * ratio ** (b / numbands), LOWFREQ * ratio ** ((b + 1) / numbands)


def band_centers(numbands: int, sr: int) -> np.ndarray:
    """
    The (geometric) center frequency of each band
    """
    b = np.arange(numbands)
    return LOWFREQ * (sr / 2 / LOWFREQ) ** ((b + 0.5) / numbands)


class NoiseBandFrame(t.NamedTuple):
    bands: np.ndarray     # linear magnitude of each band


class NoiseEnvelope:
    def __init__(self,
                 bands: np.ndarray,
                 hopsize: int,
                 fftsize: int,
                 samplerate: int,
                 numbands: int = None,
                 rmsdb: float = None
                 ) -> None:
        """
        bands: a 2D array (numframes, numbands) with the linear magnitude of each
               band, one row per analysis hop
        hopsize: the hop size of the analysis, in samples
        fftsize: the window size of the analysis
        samplerate: the samplerate of the analyzed signal
        numbands: the number of bands. Only needed if there are no frames
        rmsdb: the rms of the analyzed residual, in dB
        """
        bands = np.asarray(bands, dtype=float)
        if numbands is None:
            if bands.ndim != 2:
                raise ValueError("numbands must be given if bands is empty")
            numbands = bands.shape[1]
        self.bands = bands.reshape(-1, numbands)
        self.hopsize = int(hopsize)
        self.fftsize = int(fftsize)
        self.samplerate = int(samplerate)
        self.numbands = int(numbands)
        self.rmsdb = rmsdb

    def __repr__(self):
        return (f"NoiseEnvelope(numframes={self.numframes}, numbands={self.numbands}, "
                f"hopsize={self.hopsize}, fftsize={self.fftsize}, sr={self.samplerate})")

    def __len__(self) -> int:
        return self.numframes

    @property
    def numframes(self) -> int:
        return self.bands.shape[0]

    @property
    def framedur(self) -> float:
        return self.hopsize / self.samplerate

    @property
    def duration(self) -> float:
        return self.numframes * self.framedur

    def frame(self, idx: int) -> NoiseBandFrame:
        return NoiseBandFrame(self.bands[idx])

    def centerfreqs(self) -> np.ndarray:
        return band_centers(self.numbands, self.samplerate)

    def bandgains(self) -> np.ndarray:
        """
        The gain converting the magnitude of each band into the amplitude of
        an oscillator carrying the energy of the whole band
        """
        window = makewindow('hann', self.fftsize)
        lows, highs = band_edges(self.numbands, self.samplerate)
        bandwidths = highs - lows
        return (self.fftsize / np.sqrt(np.sum(window**2)) *
                np.sqrt(4 * bandwidths / self.samplerate))

    def asrecord(self) -> t.Record:
        return {
            'bands': self.bands.tolist(),
            'hopsize': self.hopsize,
            'fftsize': self.fftsize,
            'numbands': self.numbands,
            'samplerate': self.samplerate,
            'rmsdb': self.rmsdb
        }

    @classmethod
    def fromrecord(cls, record: t.Record) -> 'NoiseEnvelope':
        return cls(bands=record['bands'],
                   hopsize=record['hopsize'],
                   fftsize=record['fftsize'],
                   samplerate=record['samplerate'],
                   numbands=record['numbands'],
                   rmsdb=record.get('rmsdb'))


def _check_params(fftsize, hopsize, numbands, sr):
    if not ispowerof2(fftsize) or fftsize < 4:
        raise ConfigurationError(f"fftsize should be a power of two, got {fftsize}",
                                 stage="noise", param="fftsize")
    if hopsize <= 0 or hopsize > fftsize:
        raise ConfigurationError(f"hopsize should be within (0, fftsize], got {hopsize}",
                                 stage="noise", param="hopsize")
    if numbands < 1:
        raise ConfigurationError(f"numbands should be >= 1, got {numbands}",
                                 stage="noise", param="numbands")
    if sr <= 0:
        raise ConfigurationError(f"samplerate should be positive, got {sr}",
                                 stage="noise", param="sr")


def analyze_noise(samples: np.ndarray,
                  sr: int,
                  partials: t.Iter[Partial] = (),
                  fftsize: int = None,
                  hopsize: int = None,
                  numbands: int = None,
                  blocksize: int = 256
                  ) -> NoiseEnvelope:
    """
    Model the residual of samples after removing the given partials

    samples: the original (mono) signal
    sr: its samplerate
    partials: the partials derived from samples
    fftsize, hopsize, numbands: analysis parameters. If not given, the values
        in config ('noise.fftsize', 'noise.hopsize', 'noise.numbands') are used
    blocksize: number of frames processed at once

    Returns a NoiseEnvelope
    """
    config = getconfig()
    fftsize = config.override(fftsize, 'noise.fftsize')
    hopsize = config.override(hopsize, 'noise.hopsize')
    numbands = config.override(numbands, 'noise.numbands')
    _check_params(fftsize, hopsize, numbands, sr)
    samples = np.asarray(samples, dtype=float)
    if samples.ndim != 1 or len(samples) == 0:
        raise ConfigurationError("Expected a non-empty mono signal", stage="noise",
                                 param="samples")
    sines = render_partials(partials, len(samples), sr, headroom=1.0)
    residual = samples - sines
    padded = residual
    if len(padded) < fftsize:
        padded = np.concatenate((residual, np.zeros(fftsize - len(residual))))
    frames = sliding_window_view(padded, fftsize)[::hopsize]
    window = makewindow('hann', fftsize)
    centers = band_centers(numbands, sr)
    kernel = np.exp(-2j * np.pi * np.outer(np.arange(fftsize), centers) / sr)
    bands = np.empty((len(frames), numbands), dtype=float)
    for start in range(0, len(frames), blocksize):
        block = frames[start:start+blocksize] * window
        bands[start:start+len(block)] = np.abs(block @ kernel) / fftsize
    residualdb = rmsdb(residual)
    logger.info(f"Noise analysis: {len(frames)} frames, {numbands} bands, "
                f"residual rms {residualdb:.1f} dB")
    return NoiseEnvelope(bands, hopsize=hopsize, fftsize=fftsize, samplerate=sr,
                         numbands=numbands, rmsdb=residualdb)


def synthesize_noise(envelope: NoiseEnvelope,
                     numsamples: int,
                     sr: int,
                     rate=1.0,
                     mix=1.0,
                     start=0.0,
                     rng: np.random.Generator = None,
                     blocksize: int = 4096
                     ) -> np.ndarray:
    """
    Synthesize band-limited noise following a NoiseEnvelope

    envelope: the NoiseEnvelope
    numsamples: the size of the output
    sr: samplerate of the output
    rate: playback rate. Sample i corresponds to source time start + i/sr*rate
    mix: gain applied to the output
    start: source time of the first sample
    rng: a numpy random Generator, to make the output reproducible

    Each band is an oscillator at the band's center frequency with its phase
    randomized by per-sample jitter and a slow random drift. The magnitude of
    each band is interpolated linearly between frames
    """
    if rng is None:
        rng = np.random.default_rng()
    out = np.zeros(numsamples, dtype=float)
    numframes = envelope.numframes
    if numframes == 0 or mix == 0:
        return out
    centers = envelope.centerfreqs()
    amps = envelope.bands * envelope.bandgains()
    framedur = envelope.framedur
    numbands = envelope.numbands
    bandphase = rng.random(numbands) * 2 * np.pi
    for blockstart in range(0, numsamples, blocksize):
        idxs = np.arange(blockstart, min(blockstart + blocksize, numsamples))
        sourcetimes = start + idxs / sr * rate
        pos = sourcetimes / framedur
        frameidx = np.floor(pos).astype(np.int64)
        valid = (frameidx >= 0) & (frameidx < numframes)
        frameidx = np.clip(frameidx, 0, numframes - 1)
        nextidx = np.minimum(frameidx + 1, numframes - 1)
        frac = (pos - frameidx)[:, np.newaxis]
        blockamps = amps[frameidx] * (1 - frac) + amps[nextidx] * frac
        blockamps[~valid] = 0
        drift = (rng.random((len(idxs), numbands)) - 0.5) * 0.1
        drifted, bandphase = phase_fold(drift, bandphase)
        jitter = (rng.random((len(idxs), numbands)) - 0.5) * 0.5
        phases = drifted + np.outer(sourcetimes * 2 * np.pi, centers) + jitter
        out[idxs[0]:idxs[-1]+1] = np.sum(blockamps * np.sin(phases), axis=1)
    out *= mix
    logger.debug(f"Synthesized noise: {numsamples} samples, rms {rmsdb(out):.1f} dB")
    return out


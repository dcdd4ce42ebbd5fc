"""
Partial-tracking analysis

An analysis pass slides a window over a mono signal, picks the spectral
peaks of each frame and links them into partials. The pass is cooperative:
AnalysisPass.steps() is a generator which reports progress every few
frames, so that a host can interleave its own work. Abandoning the
generator cancels the pass

Example::

    >>> spectrum = analyze(samples, sr=44100, fftsize=2048, hopsize=512)

    >>> apass = AnalysisPass(samples, sr=44100)
    >>> for progress in apass.steps():
    ...     print(f"{progress.done}/{progress.total}")
    >>> spectrum = apass.result
"""
import numpy as np
from numpy.lib.stride_tricks import sliding_window_view
import logging

from .config import getconfig
from .errors import ConfigurationError
from .fft import makewindow, magnitude_spectrum, window_gain, ispowerof2, WINDOWS
from .peaks import find_peaks
from .spectrum import Spectrum
from .tracking import Frame, PartialTracker, postprocess
from . import typehints as t


logger = logging.getLogger("sinetrck")

__all__ = [
    'AnalysisOptions',
    'AnalysisPass',
    'Progress',
    'analysis_options',
    'iterframes',
    'analyze'
]


class AnalysisOptions(t.NamedTuple):
    fftsize: int = 2048
    hopsize: int = 512
    window: str = 'hann'
    minamp: float = -60.
    maxpartials: int = 500
    mindur: float = 50.
    freqtolerance: float = 50.
    freqmin: float = 20.
    freqmax: float = 8000.
    maxpeaks: int = 100
    yieldevery: int = 100

    def asrecord(self) -> t.Record:
        return self._asdict()


class Progress(t.NamedTuple):
    stage: str
    done: int
    total: int


def _fail(msg, param):
    raise ConfigurationError(msg, stage="analysis", param=param)


def analysis_options(**kws) -> AnalysisOptions:
    """
    Build an AnalysisOptions, taking any option not given (or given as None)
    from the config ('analysis.<option>'). Raises ConfigurationError if any
    option is invalid
    """
    unknown = set(kws) - set(AnalysisOptions._fields)
    if unknown:
        _fail(f"Unknown options: {unknown}", param=unknown.pop())
    config = getconfig()
    values = {field: config.override(kws.get(field), 'analysis.' + field)
              for field in AnalysisOptions._fields}
    options = AnalysisOptions(**values)
    validate_options(options)
    return options


def validate_options(options: AnalysisOptions) -> None:
    if not ispowerof2(options.fftsize) or options.fftsize < 4:
        _fail(f"fftsize must be a power of two, got {options.fftsize}", "fftsize")
    if options.hopsize <= 0:
        _fail(f"hopsize must be positive, got {options.hopsize}", "hopsize")
    if options.hopsize > options.fftsize:
        _fail(f"hopsize ({options.hopsize}) can't be bigger than "
              f"fftsize ({options.fftsize})", "hopsize")
    if options.window not in WINDOWS:
        _fail(f"window must be one of {WINDOWS}, got {options.window}", "window")
    if options.maxpartials < 1:
        _fail(f"maxpartials must be >= 1, got {options.maxpartials}", "maxpartials")
    if options.mindur < 0:
        _fail(f"mindur can't be negative, got {options.mindur}", "mindur")
    if options.freqtolerance <= 0:
        _fail(f"freqtolerance must be positive, got {options.freqtolerance}", "freqtolerance")
    if options.freqmin >= options.freqmax:
        _fail(f"freqmin ({options.freqmin}) must be lower than "
              f"freqmax ({options.freqmax})", "freqmin")
    if options.maxpeaks < 1:
        _fail(f"maxpeaks must be >= 1, got {options.maxpeaks}", "maxpeaks")
    if options.yieldevery < 1:
        _fail(f"yieldevery must be >= 1, got {options.yieldevery}", "yieldevery")


def _checksignal(samples, sr) -> np.ndarray:
    if sr <= 0:
        _fail(f"samplerate must be positive, got {sr}", "sr")
    samples = np.asarray(samples, dtype=float)
    if samples.ndim != 1:
        _fail(f"Expected a mono signal, got an array of shape {samples.shape}. "
              "Use util.downmix to convert to mono", "samples")
    if len(samples) == 0:
        _fail("The signal is empty", "samples")
    return samples


def numframes(numsamples: int, fftsize: int, hopsize: int) -> int:
    """
    The number of complete frames which fit in numsamples. A signal shorter
    than fftsize still produces one (zero-padded) frame
    """
    if numsamples < fftsize:
        return 1
    return (numsamples - fftsize) // hopsize + 1


def iterframes(samples: np.ndarray, sr: int, options: AnalysisOptions,
               start=0, end: int = None) -> t.Iterator[Frame]:
    """
    Analyze the frames of samples, yielding a Frame for each

    samples: a mono signal
    sr: its samplerate
    options: the AnalysisOptions
    start, end: the range of frames to analyze

    The time of each frame is the time of its first sample
    """
    fftsize, hopsize = options.fftsize, options.hopsize
    if len(samples) < fftsize:
        samples = np.concatenate((samples, np.zeros(fftsize - len(samples))))
    frames = sliding_window_view(samples, fftsize)[::hopsize]
    end = len(frames) if end is None else min(end, len(frames))
    if start >= end:
        return
    window = makewindow(options.window, fftsize)
    # scale the magnitudes so that a sinusoid is measured at its own amplitude
    mags = magnitude_spectrum(frames[start:end], window) * window_gain(window)
    for i, framemags in enumerate(mags):
        peaks = find_peaks(framemags, sr=sr, fftsize=fftsize, minamp=options.minamp,
                           freqmin=options.freqmin, freqmax=options.freqmax,
                           maxpeaks=options.maxpeaks)
        yield Frame(time=(start + i) * hopsize / sr, peaks=peaks)


class AnalysisPass:
    def __init__(self, samples: np.ndarray, sr: int, **options) -> None:
        """
        samples: a mono signal. Multichannel signals must be downmixed
                 first (see util.downmix)
        sr: the samplerate
        options: any field of AnalysisOptions. Options not given are taken
                 from the config
        """
        self.options = analysis_options(**options)
        self.samples = _checksignal(samples, sr)
        self.sr = sr
        self.numframes = numframes(len(self.samples), self.options.fftsize,
                                   self.options.hopsize)
        self.result: t.Opt[Spectrum] = None

    def steps(self) -> t.Iterator[Progress]:
        """
        Run the analysis, yielding a Progress every `yieldevery` frames.
        Once exhausted, the resulting Spectrum is at .result
        """
        options = self.options
        logger.debug(f"Analysis: {len(self.samples)} samples, sr={self.sr}, "
                     f"{self.numframes} frames, {options}")
        tracker = PartialTracker(freqtolerance=options.freqtolerance)
        for start in range(0, self.numframes, options.yieldevery):
            end = min(start + options.yieldevery, self.numframes)
            for frame in iterframes(self.samples, self.sr, options, start=start, end=end):
                tracker.process(frame)
            yield Progress("tracking", end, self.numframes)
        partials = postprocess(tracker.finish(), sr=self.sr, hopsize=options.hopsize,
                               mindur=options.mindur, maxpartials=options.maxpartials)
        self.result = Spectrum(partials)
        logger.info(f"Analysis finished: {self.numframes} frames, "
                    f"{len(partials)} partials")
        yield Progress("done", self.numframes, self.numframes)

    def run(self, progress: t.Fun[[Progress], None] = None) -> Spectrum:
        """
        Run the analysis to completion

        progress: if given, a function called with each Progress
        """
        for step in self.steps():
            if progress is not None:
                progress(step)
        return self.result


def analyze(samples: np.ndarray,
            sr: int,
            progress: t.Fun[[Progress], None] = None,
            **options
            ) -> Spectrum:
    """
    Analyze samples, returns a Spectrum

    samples: a mono signal
    sr: the samplerate
    progress: a function called periodically with a Progress
    options: see AnalysisOptions. Options not given are taken from config

    fftsize: size of the analysis window, a power of two (default 2048)
    hopsize: samples between successive frames (default 512)
    window: 'hann', 'hamming' or 'blackman'
    minamp: peaks below this amplitude (dB) are discarded
    maxpartials: only the loudest partials are kept
    mindur: min. duration of a partial, in ms
    freqtolerance: max. linking cost (Hz) between a partial and a peak
    freqmin, freqmax: only peaks within this frequency band are tracked
    """
    return AnalysisPass(samples, sr, **options).run(progress)

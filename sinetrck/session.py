"""
A Session ties a signal to its analysis and keeps the edit history

Example::

    >>> session = Session(samples, samplerate=44100)
    >>> session.analyze(fftsize=2048, hopsize=512)
    >>> ids = session.apply(fx.transpose, [0, 1, 2], ratio=1.5)
    >>> session.undo()
    >>> out = session.synthesize(rate=0.5)
"""
from __future__ import annotations
import numpy as np
import logging

from .analysis import AnalysisOptions, AnalysisPass, Progress, analysis_options
from .config import getconfig
from .const import UNSETID
from .errors import ConfigurationError
from .noise import NoiseEnvelope, analyze_noise
from .partial import Partial
from .spectrum import Spectrum, fromrecords
from .synthesis import synthesize
from .util import aslist
from .version import __version__
from . import typehints as t


logger = logging.getLogger("sinetrck")

RECORD_VERSION = 1


class Session:

    def __init__(self, samples: np.ndarray, samplerate: int,
                 spectrum: Spectrum = None) -> None:
        """
        samples: the source signal, mono
        samplerate: its samplerate
        spectrum: an initial spectrum, if already analyzed
        """
        if samplerate <= 0:
            raise ConfigurationError(f"samplerate should be positive, got {samplerate}",
                                     stage="session", param="samplerate")
        self.samples = np.asarray(samples, dtype=float)
        self.samplerate = int(samplerate)
        self.spectrum: Spectrum = spectrum if spectrum is not None else Spectrum([])
        self.noise: t.Opt[NoiseEnvelope] = None
        self.noisestale = True
        self.settings: AnalysisOptions = analysis_options()
        self._undo: t.List[Spectrum] = []
        self._redo: t.List[Spectrum] = []

    def __repr__(self):
        return (f"Session(sr={self.samplerate}, duration={self.duration:.3f}, "
                f"partials={len(self.spectrum)})")

    @property
    def duration(self) -> float:
        """ The duration of the signal or the end of the last partial, if later """
        return max(len(self.samples) / self.samplerate, self.spectrum.t1)

    # ---------------------------------------------------------------
    # history
    # ---------------------------------------------------------------

    def _commit(self, spectrum: Spectrum) -> None:
        self._undo.append(self.spectrum)
        maxundo = getconfig()['session.maxundo']
        if len(self._undo) > maxundo:
            del self._undo[:len(self._undo) - maxundo]
        self._redo.clear()
        self.spectrum = spectrum

    @property
    def canundo(self) -> bool:
        return bool(self._undo)

    @property
    def canredo(self) -> bool:
        return bool(self._redo)

    def undo(self) -> bool:
        """ Restore the spectrum before the last edit. Returns False if nothing to undo """
        if not self._undo:
            return False
        self._redo.append(self.spectrum)
        self.spectrum = self._undo.pop()
        self.noisestale = True
        return True

    def redo(self) -> bool:
        if not self._redo:
            return False
        self._undo.append(self.spectrum)
        self.spectrum = self._redo.pop()
        self.noisestale = True
        return True

    # ---------------------------------------------------------------
    # analysis
    # ---------------------------------------------------------------

    def analysis_pass(self, **options) -> AnalysisPass:
        """
        Create an AnalysisPass over the signal of this session. The result
        is not installed: use .install to make it the current spectrum
        """
        return AnalysisPass(self.samples, self.samplerate, **options)

    def install(self, apass: AnalysisPass) -> Spectrum:
        """ Make the result of a finished AnalysisPass the current spectrum """
        if apass.result is None:
            raise ValueError("The analysis pass has not finished")
        self.settings = apass.options
        self._commit(apass.result)
        self.noisestale = True
        return self.spectrum

    def analyze(self, progress: t.Fun[[Progress], None] = None, **options) -> Spectrum:
        """
        Analyze the signal, replacing the current spectrum (undoable).
        See analysis.analyze for the options
        """
        apass = self.analysis_pass(**options)
        apass.run(progress)
        return self.install(apass)

    def analyze_noise(self, **kws) -> NoiseEnvelope:
        """
        Model the residual of the signal after removing the current partials.
        kws are passed to noise.analyze_noise
        """
        self.noise = analyze_noise(self.samples, self.samplerate, self.spectrum.partials, **kws)
        self.noisestale = False
        return self.noise

    # ---------------------------------------------------------------
    # editing
    # ---------------------------------------------------------------

    def apply(self, func: t.Fun[..., t.List[Partial]], ids: t.Iter[int], *args, **kws
              ) -> t.List[int]:
        """
        Apply a transformation to the partials with the given ids

        func: a function taking a list of partials (plus args and kws) and
              returning the partials which replace them (see fx)
        ids: the ids of the selected partials. Unknown ids are ignored

        Returns the ids of the resulting partials
        """
        selection = self.spectrum.select(ids)
        if not selection:
            logger.debug(f"apply {func.__name__}: empty selection, nothing to do")
            return []
        result = func(selection, *args, **kws)
        spectrum, newids = self.spectrum.replaced([p.id for p in selection], result)
        self._commit(spectrum)
        self.noisestale = True
        return newids

    def add(self, partials: t.Iter[Partial]) -> t.List[int]:
        """ Add (paste) partials. Returns their ids """
        spectrum, newids = self.spectrum.replaced((), [p.with_id(UNSETID) for p in partials])
        self._commit(spectrum)
        self.noisestale = True
        return newids

    def delete(self, ids: t.Iter[int]) -> None:
        ids = aslist(ids)
        if not self.spectrum.select(ids):
            return
        self._commit(self.spectrum.without(ids))
        self.noisestale = True

    # ---------------------------------------------------------------
    # output
    # ---------------------------------------------------------------

    def synthesize(self, sr: int = None, rate=1.0, withnoise=True, mix: float = None,
                   **kws) -> np.ndarray:
        """
        Render the current spectrum

        sr: the samplerate, defaults to the samplerate of the session
        rate: playback rate
        withnoise: include the noise envelope, if one was analyzed
        mix: level of the noise, see synthesis.synthesize

        A stale noise envelope (computed before the last edit) is still used
        """
        sr = sr or self.samplerate
        noise = self.noise if withnoise else None
        if noise is not None and self.noisestale:
            logger.info("The noise envelope was computed before the last edit")
        return synthesize(self.spectrum.partials, sr=sr, rate=rate, noise=noise,
                          mix=mix, **kws)

    def asrecord(self) -> t.Record:
        """
        The session as plain data (the samples are not included)
        """
        return {
            'version': RECORD_VERSION,
            'generator': "sinetrck %d.%d.%d" % __version__,
            'samplerate': self.samplerate,
            'duration': self.duration,
            'partials': self.spectrum.asrecords(),
            'nextid': self.spectrum.nextid(),
            'settings': self.settings.asrecord(),
            'noise': self.noise.asrecord() if self.noise is not None else None
        }

    @classmethod
    def fromrecord(cls, record: t.Record, samples: np.ndarray = None) -> Session:
        """
        Restore a session from a record. The samples are not part of the
        record and can be given separately
        """
        version = record.get('version', RECORD_VERSION)
        if version > RECORD_VERSION:
            raise ConfigurationError(f"Can't read a record of version {version}",
                                     stage="session", param="version")
        samples = np.zeros(0) if samples is None else samples
        session = cls(samples, record['samplerate'], spectrum=fromrecords(record['partials']))
        if record.get('settings'):
            session.settings = analysis_options(**record['settings'])
        if record.get('noise'):
            session.noise = NoiseEnvelope.fromrecord(record['noise'])
            session.noisestale = False
        return session

import numpy as np
import bpf4 as bpf
import logging

from .const import UNSETID
from .errors import DegenerateInputError
from .util import asfloatarray
from . import typehints as t


logger = logging.getLogger("sinetrck")


class Point(t.NamedTuple):
    time: float
    freq: float
    amp: float      # dB


###################################################################
#
#   Partial
#
###################################################################


class Partial:

    __slots__ = ("times", "freqs", "amps", "id", "_freqbpf", "_ampbpf",
                 "_meanfreq", "_meanamp")

    def __init__(self,
                 times: t.U[t.Seq[float], np.ndarray],
                 freqs: t.U[t.Seq[float], np.ndarray],
                 amps: t.U[t.Seq[float], np.ndarray],
                 id: int = UNSETID
                 ) -> None:
        """
        A sinusoidal trajectory, a time-ordered sequence of breakpoints

        times: the times of each breakpoint, non-decreasing
        freqs: frequencies in Hz, > 0
        amps: amplitudes in dB
        id: a numeric id, the only stable handle to a partial within a Spectrum.
            New partials have an unset id (-1) until they are inserted
            into a Spectrum

        A Partial is immutable: all operations return a new Partial
        """
        T = self.times = asfloatarray(times)
        self.freqs: np.ndarray = asfloatarray(freqs)
        self.amps: np.ndarray = asfloatarray(amps)
        L = len(T)
        if L == 0:
            raise DegenerateInputError("Creating an empty partial")
        if len(self.freqs) != L or len(self.amps) != L:
            raise ValueError(f"times, freqs and amps should have the same size, "
                             f"got {L}, {len(self.freqs)}, {len(self.amps)}")
        if L == 1:
            logger.debug(f"Created a Partial with only one breakpoint t={T[0]:.3f}, "
                         f"f={self.freqs[0]:.0f}, a={self.amps[0]:.0f}dB")
        elif np.any(np.diff(T) < 0):
            raise ValueError("The times of a Partial should be non-decreasing")
        if np.any(self.freqs <= 0):
            raise DegenerateInputError("The frequencies of a Partial should be > 0")
        self.id: int = int(id)
        self._freqbpf = None
        self._ampbpf = None
        self._meanfreq = -1.0
        self._meanamp = None

    @property
    def t0(self) -> float:
        return float(self.times[0])

    @property
    def t1(self) -> float:
        return float(self.times[-1])

    @property
    def duration(self) -> float:
        return self.t1 - self.t0

    @property
    def numpoints(self) -> int:
        return len(self.times)

    def __len__(self) -> int:
        return len(self.times)

    @property
    def points(self) -> t.List[Point]:
        return [Point(float(T), float(f), float(a))
                for T, f, a in zip(self.times, self.freqs, self.amps)]

    @property
    def freq(self):
        """ The frequency of this partial as a bpf (time -> Hz) """
        if self._freqbpf is None:
            if self.numpoints > 1:
                self._freqbpf = bpf.core.Linear(self.times, self.freqs)
            else:
                self._freqbpf = bpf.core.Const(float(self.freqs[0]))
        return self._freqbpf

    @property
    def amp(self):
        """ The amplitude of this partial as a bpf (time -> dB) """
        if self._ampbpf is None:
            if self.numpoints > 1:
                self._ampbpf = bpf.core.Linear(self.times, self.amps)
            else:
                self._ampbpf = bpf.core.Const(float(self.amps[0]))
        return self._ampbpf

    def at(self, time: float) -> t.Opt[t.Tup[float, float]]:
        """
        Returns (freq, amp) at the given time, or None if this partial
        is not present at that time
        """
        if time < self.t0 or time > self.t1:
            return None
        return float(self.freq(time)), float(self.amp(time))

    @property
    def meanfreq(self) -> float:
        """ The mean frequency of the breakpoints """
        if self._meanfreq < 0:
            self._meanfreq = float(np.mean(self.freqs))
        return self._meanfreq

    @property
    def meanamp(self) -> float:
        """ The mean amplitude (dB) of the breakpoints """
        if self._meanamp is None:
            self._meanamp = float(np.mean(self.amps))
        return self._meanamp

    @property
    def minfreq(self) -> float:
        return float(self.freqs.min())

    @property
    def maxfreq(self) -> float:
        return float(self.freqs.max())

    def __repr__(self) -> str:
        return "Partial %d [%.4f:%.4f] %.1fHz %.1fdB (%d bps)" % (
            self.id, self.t0, self.t1, self.meanfreq, self.meanamp, self.numpoints)

    def __eq__(self, other) -> bool:
        if self is other:
            return True
        if not isinstance(other, Partial):
            return NotImplemented
        return (self.id == other.id and
                self.numpoints == other.numpoints and
                np.allclose(self.times, other.times) and
                np.allclose(self.freqs, other.freqs) and
                np.allclose(self.amps, other.amps))

    __hash__ = None

    def clone(self, **kws) -> 'Partial':
        """
        Create a copy of this Partial, overriding any of its attributes
        (times, freqs, amps, id)
        """
        attrs = dict(times=self.times, freqs=self.freqs, amps=self.amps, id=self.id)
        attrs.update(kws)
        return Partial(**attrs)

    def with_id(self, id: int) -> 'Partial':
        return self.clone(id=id)

    def shifted(self, dt: float) -> 'Partial':
        return self.clone(times=self.times + dt)

    def transposed(self, ratio: float) -> 'Partial':
        return self.clone(freqs=self.freqs * ratio)

    def gain(self, db: float) -> 'Partial':
        """ Add db to the amplitude of every breakpoint """
        return self.clone(amps=self.amps + db)

    def resampled(self, numpoints: int) -> 'Partial':
        """
        Resample this partial at numpoints evenly spaced breakpoints
        between its start and end, interpolating linearly
        """
        if numpoints < 2 or self.numpoints < 2 or self.duration == 0:
            return self
        times = np.linspace(self.t0, self.t1, numpoints)
        # np.interp tolerates repeated times (e.g. after quantization)
        freqs = np.interp(times, self.times, self.freqs)
        amps = np.interp(times, self.times, self.amps)
        return self.clone(times=times, freqs=freqs, amps=amps)

    def toarray(self) -> np.ndarray:
        """
        Returns a 2D array with columns time, freq, amp
        """
        return np.column_stack((self.times, self.freqs, self.amps))

    @staticmethod
    def fromarray(data: np.ndarray, id: int = UNSETID) -> 'Partial':
        """
        data is a 2D array of the form:

        [[t0, freq0, amp0],
         [t1, freq1, amp1],
         ...]
        """
        data = np.asarray(data, dtype=float)
        if data.ndim != 2 or data.shape[1] < 3:
            raise ValueError(f"Expected a 2D array with 3 columns, got shape {data.shape}")
        return Partial(data[:, 0], data[:, 1], data[:, 2], id=id)

    @staticmethod
    def frompoints(points: t.Seq[t.Tup[float, float, float]], id: int = UNSETID) -> 'Partial':
        """ points: a seq. of (time, freq, amp) tuples (or Points) """
        if len(points) == 0:
            raise DegenerateInputError("Creating a partial without points")
        return Partial.fromarray(np.array(points, dtype=float), id=id)

    def asrecord(self) -> t.Record:
        """
        A plain-data representation of this Partial, suitable to be
        serialized as json
        """
        return {
            'id': self.id,
            'points': [{'time': p.time, 'freq': p.freq, 'amplitude': p.amp}
                       for p in self.points]
        }

    @staticmethod
    def fromrecord(record: t.Record) -> 'Partial':
        points = record['points']
        times = [p['time'] for p in points]
        freqs = [p['freq'] for p in points]
        amps = [p['amplitude'] for p in points]
        return Partial(times, freqs, amps, id=record.get('id', UNSETID))

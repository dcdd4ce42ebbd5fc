from __future__ import annotations
import numpy as np
import logging

from .const import UNSETID
from .partial import Partial
from . import synthesis as _synthesis
from .util import aslist, checktype
from . import typehints as t


inf = float("inf")

logger = logging.getLogger("sinetrck")

__all__ = [
    'Spectrum',
    'fromarray',
    'fromrecords',
    'merge',
]


#######################################################################
#
# Spectrum
#
#######################################################################


class Spectrum(object):
    def __init__(self, partials: t.Iter[Partial], *, skipsort=False):
        """
        partials: a seq. of Partial (can be a generator). Partials with
                  an unset id get a new, unique id
        skipsort: if True, sorting of the partials will be skipped

        A Spectrum is never modified in place: all operations return
        a new Spectrum. Partials are identified by their id

        See Also: analyze
        """
        self.partials: t.List[Partial] = aslist(partials)
        ids = [p.id for p in self.partials if p.id != UNSETID]
        if len(set(ids)) != len(ids):
            raise ValueError("The ids of the partials of a Spectrum should be unique")
        if len(ids) < len(self.partials):
            nextid = max(ids, default=-1) + 1
            out = []
            for p in self.partials:
                if p.id == UNSETID:
                    p = p.with_id(nextid)
                    nextid += 1
                out.append(p)
            self.partials = out
        if not skipsort:
            self.partials.sort(key=lambda p: p.t0)
        self._byid = None

    @property
    def t0(self) -> float:
        return min((p.t0 for p in self.partials), default=0.)

    @property
    def t1(self) -> float:
        return max((p.t1 for p in self.partials), default=0.)

    @property
    def duration(self) -> float:
        return self.t1 - self.t0

    def __repr__(self) -> str:
        return "Spectrum [%.4f:%.4f]: %d partials" % (
            self.t0, self.t1, len(self.partials))

    def __iter__(self) -> t.Iterator[Partial]:
        return iter(self.partials)

    def __len__(self) -> int:
        return len(self.partials)

    def __getitem__(self, n):
        if isinstance(n, int):
            return self.partials[n]
        elif isinstance(n, slice):
            return self.__class__(self.partials[n])
        raise TypeError(f"Expected an int or a slice, got {n}")

    def __eq__(self, other: Spectrum) -> bool:
        if not isinstance(other, Spectrum):
            return NotImplemented
        if self is other:
            return True
        if len(self) != len(other):
            return False
        return all(p0 == p1 for p0, p1 in zip(self.partials, other.partials))

    __hash__ = None

    def __add__(self, other: Spectrum) -> Spectrum:
        return merge(self, other)

    def ids(self) -> t.List[int]:
        return [p.id for p in self.partials]

    def nextid(self) -> int:
        """ An id not used by any partial of this Spectrum """
        return max(self.ids(), default=-1) + 1

    def get(self, id: int) -> t.Opt[Partial]:
        """ Returns the partial with the given id, or None """
        if self._byid is None:
            self._byid = {p.id: p for p in self.partials}
        return self._byid.get(id)

    def select(self, ids: t.Iter[int]) -> t.List[Partial]:
        """
        Returns the partials with the given ids (unknown ids are skipped),
        in the order of this spectrum
        """
        ids = set(ids)
        return [p for p in self.partials if p.id in ids]

    def partials_at(self, time: float) -> Spectrum:
        return self.partials_between(time, time)

    def partials_between(self, t0: float, t1: float) -> Spectrum:
        """
        Returns a Spectrum with the partials present between t0 and t1
        """
        out = [p for p in self.partials
               if p.t1 >= t0 and p.t0 <= t1]
        return self.__class__(out, skipsort=True)

    def data_at(self, time: float, minamp=-inf) -> t.List[t.Tup[int, float, float]]:
        """
        Returns a list of (id, freq, amp) for all partials present at the
        given time, sorted by frequency
        """
        out = []
        for p in self.partials:
            data = p.at(time)
            if data is not None and data[1] >= minamp:
                out.append((p.id, data[0], data[1]))
        out.sort(key=lambda item: item[1])
        return out

    def filter(self, mindur=0., minamp=-inf, minfreq=0., maxfreq=inf, minbps=1) -> Spectrum:
        """
        Return a new Spectrum with the partials which satisfy all conditions

        mindur: min. duration, in seconds
        minamp: min. mean amplitude, in dB
        minfreq, maxfreq: the mean frequency should be within this range
        minbps: min. number of breakpoints
        """
        out = [p for p in self.partials
               if p.duration >= mindur and p.meanamp >= minamp and
               minfreq <= p.meanfreq <= maxfreq and p.numpoints >= minbps]
        return self.__class__(out, skipsort=True)

    def without(self, ids: t.Iter[int]) -> Spectrum:
        """ Returns a copy of this Spectrum with the given partials removed """
        ids = set(ids)
        return self.__class__([p for p in self.partials if p.id not in ids],
                              skipsort=True)

    def replaced(self, ids: t.Iter[int], partials: t.Iter[Partial]
                 ) -> t.Tup[Spectrum, t.List[int]]:
        """
        Remove the partials with the given ids and add the given partials.

        Partials keep their id if it is not taken by another partial
        of the result, otherwise (or if their id is unset) they get a new id.

        Returns (spectrum, newids), where newids are the ids of the
        added partials, in the order given
        """
        kept = self.without(ids).partials
        taken = {p.id for p in kept}
        nextid = max(self.nextid(), max(taken, default=-1) + 1)
        added = []
        for p in partials:
            checktype(p, Partial)
            if p.id == UNSETID or p.id in taken:
                p = p.with_id(nextid)
                nextid += 1
            else:
                nextid = max(nextid, p.id + 1)
            taken.add(p.id)
            added.append(p)
        return self.__class__(kept + added), [p.id for p in added]

    def renumbered(self) -> Spectrum:
        """ Returns a copy with ids 0, 1, 2... in the order of this spectrum """
        return self.__class__([p.with_id(i) for i, p in enumerate(self.partials)],
                              skipsort=True)

    def copy(self) -> Spectrum:
        return self.__class__(self.partials[:], skipsort=True)

    def asarrays(self) -> t.List[np.ndarray]:
        """ Each partial as a 2D array with columns time, freq, amp """
        return [p.toarray() for p in self.partials]

    def asrecords(self) -> t.List[t.Record]:
        return [p.asrecord() for p in self.partials]

    def synthesize(self, sr: int = 44100, rate=1.0, **kws) -> np.ndarray:
        """
        Render this spectrum as samples. See synthesis.synthesize
        """
        return _synthesis.synthesize(self.partials, sr=sr, rate=rate, **kws)


def fromarray(arrayseq: t.Iter[np.ndarray], ids: t.Seq[int] = None) -> Spectrum:
    """
    construct a Spectrum from array data

    arrayseq: a seq. of 2D arrays, where each array represents a partial,
              with columns time, freq, amp
    ids: if given, the id of each partial
    """
    arrays = aslist(arrayseq)
    if ids is None:
        ids = [UNSETID] * len(arrays)
    return Spectrum([Partial.fromarray(data, id=id) for data, id in zip(arrays, ids)])


def fromrecords(records: t.Iter[t.Record]) -> Spectrum:
    return Spectrum([Partial.fromrecord(record) for record in records])


def merge(*spectra: Spectrum) -> Spectrum:
    """
    Merge two or more Spectra. Partials whose id is already present
    are given a new id
    """
    out = spectra[0]
    for spectrum in spectra[1:]:
        out, _ = out.replaced((), spectrum.partials)
    return out

"""
Frame to frame partial tracking

Peaks of consecutive frames are linked into partials by a greedy,
cost-ordered one-to-one assignment. The cost of linking a peak to an
active partial weights the distance to the partial's last frequency and
to a damped linear prediction of its next frequency
"""
import numpy as np
import logging

from .partial import Partial
from .peaks import Peak
from . import typehints as t


logger = logging.getLogger("sinetrck")

__all__ = [
    'Frame',
    'PartialTracker',
    'predict_freq',
    'link_cost',
    'postprocess',
    'track_partials'
]


class Frame(t.NamedTuple):
    time: float
    peaks: t.List[Peak]


def predict_freq(lastfreq: float, prevfreq: float = None) -> float:
    """
    Predict the next frequency of a trajectory by damped linear
    extrapolation. Without a previous frequency the last one is returned
    """
    if prevfreq is None:
        return lastfreq
    return lastfreq + 0.5 * (lastfreq - prevfreq)


def link_cost(freq, lastfreq, predicted):
    """ The cost of linking a peak at freq to a trajectory """
    return 0.7 * np.abs(freq - lastfreq) + 0.3 * np.abs(freq - predicted)


class _Track:
    __slots__ = ("id", "times", "freqs", "amps")

    def __init__(self, id: int, time: float, peak: Peak):
        self.id = id
        self.times = [time]
        self.freqs = [peak.freq]
        self.amps = [peak.amp]

    def append(self, time: float, peak: Peak) -> None:
        self.times.append(time)
        self.freqs.append(peak.freq)
        self.amps.append(peak.amp)

    def predicted(self) -> float:
        prev = self.freqs[-2] if len(self.freqs) > 1 else None
        return predict_freq(self.freqs[-1], prev)

    def __len__(self):
        return len(self.times)

    def topartial(self) -> Partial:
        return Partial(self.times, self.freqs, self.amps, id=self.id)


class PartialTracker:
    """
    Links the peaks of successive frames into partials

    Usage::

        tracker = PartialTracker(freqtolerance=50)
        for frame in frames:
            tracker.process(frame)
        partials = tracker.finish()

    A partial is active while it keeps finding a peak in each new frame.
    Once it misses one it ends, and is kept only if it has at least two
    breakpoints
    """

    def __init__(self, freqtolerance: float = 50.) -> None:
        self.freqtolerance = freqtolerance
        self.active: t.List[_Track] = []
        self.ended: t.List[Partial] = []
        self.numframes = 0
        self.numdiscarded = 0
        self._nextid = 0

    @property
    def numactive(self) -> int:
        return len(self.active)

    def _end(self, track: _Track) -> None:
        if len(track) >= 2:
            self.ended.append(track.topartial())
        else:
            self.numdiscarded += 1

    def _new(self, time: float, peak: Peak) -> _Track:
        track = _Track(self._nextid, time, peak)
        self._nextid += 1
        return track

    def process(self, frame: Frame) -> None:
        """ Process the peaks of the next frame """
        self.numframes += 1
        peaks = frame.peaks
        active = self.active
        matchedtracks = np.zeros(len(active), dtype=bool)
        matchedpeaks = np.zeros(len(peaks), dtype=bool)
        if active and peaks:
            peakfreqs = np.array([peak.freq for peak in peaks])
            lastfreqs = np.array([track.freqs[-1] for track in active])
            predicted = np.array([track.predicted() for track in active])
            costs = link_cost(peakfreqs[np.newaxis, :],
                              lastfreqs[:, np.newaxis],
                              predicted[:, np.newaxis])
            trackidxs, peakidxs = np.nonzero(costs < self.freqtolerance)
            order = np.argsort(costs[trackidxs, peakidxs], kind='stable')
            for trackidx, peakidx in zip(trackidxs[order], peakidxs[order]):
                if matchedtracks[trackidx] or matchedpeaks[peakidx]:
                    continue
                matchedtracks[trackidx] = True
                matchedpeaks[peakidx] = True
                active[trackidx].append(frame.time, peaks[peakidx])
        stillactive = []
        for track, matched in zip(active, matchedtracks):
            if matched:
                stillactive.append(track)
            else:
                self._end(track)
        for peak, matched in zip(peaks, matchedpeaks):
            if not matched:
                stillactive.append(self._new(frame.time, peak))
        self.active = stillactive

    def finish(self) -> t.List[Partial]:
        """
        End all active partials and return every partial found
        """
        for track in self.active:
            self._end(track)
        self.active = []
        logger.debug(f"Tracking: {self.numframes} frames, {len(self.ended)} partials, "
                     f"{self.numdiscarded} single-point tracks discarded")
        return self.ended


def postprocess(partials: t.List[Partial],
                sr: int,
                hopsize: int,
                mindur: float,
                maxpartials: int
                ) -> t.List[Partial]:
    """
    Remove short partials, keep the loudest ones and renumber them

    partials: the partials as returned by the tracker
    sr: samplerate of the analyzed signal
    hopsize: the hop size of the analysis, in samples
    mindur: min. duration of a partial, in milliseconds. It is converted to
            a min. number of breakpoints
    maxpartials: if more partials remain, only those with the highest
                 mean amplitude are kept

    Returns the remaining partials, with ids 0, 1, 2, ...
    """
    minpoints = mindur / 1000 * sr / hopsize
    out = [p for p in partials if p.numpoints >= minpoints]
    logger.debug(f"Removed {len(partials) - len(out)} partials with less than "
                 f"{minpoints:.1f} breakpoints")
    if len(out) > maxpartials:
        out = sorted(out, key=lambda p: p.meanamp, reverse=True)[:maxpartials]
    return [p.with_id(i) for i, p in enumerate(out)]


def track_partials(frames: t.Iter[Frame], freqtolerance: float = 50.) -> t.List[Partial]:
    """
    Track all frames, returns the partials found (without postprocessing)
    """
    tracker = PartialTracker(freqtolerance=freqtolerance)
    for frame in frames:
        tracker.process(frame)
    return tracker.finish()

import numpy as np
import pytest

import sinetrck
from sinetrck import Partial, Spectrum
from sinetrck.const import UNSETID
from sinetrck.errors import DegenerateInputError


def mkpartial(t0, t1, freq, amp=-20., id=UNSETID):
    return Partial([t0, (t0 + t1) / 2, t1], [freq, freq * 1.01, freq], [amp, amp, amp], id=id)


@pytest.fixture
def spectrum():
    return Spectrum([mkpartial(0.5, 1.0, 440, id=3),
                     mkpartial(0.0, 0.8, 220),
                     mkpartial(0.2, 2.0, 880, amp=-50)])


def test_partial_validation():
    with pytest.raises(DegenerateInputError):
        Partial([], [], [])
    with pytest.raises(ValueError):
        Partial([0, 1], [100], [0, 0])
    with pytest.raises(ValueError):
        Partial([1, 0], [100, 100], [0, 0])
    with pytest.raises(DegenerateInputError):
        Partial([0, 1], [100, 0], [0, 0])


def test_partial_at():
    p = Partial([0, 1], [100, 200], [-10, -20])
    freq, amp = p.at(0.5)
    assert freq == pytest.approx(150)
    assert amp == pytest.approx(-15)
    assert p.at(1.5) is None
    assert Partial([0], [100], [-6]).at(0) == (100, -6)


def test_single_breakpoint():
    p = Partial([0.5], [440.], [-10.])
    assert p.times[0] == 0.5
    assert p.at(0.5) == (440, -10)
    assert p.freq(0.5) == pytest.approx(440)
    assert p.amp(2.0) == pytest.approx(-10)
    sp = Spectrum([p, mkpartial(0, 1, 220)])
    data = sp.data_at(0.5)
    assert [row[1:] for row in data][1] == (440, -10)


def test_partial_record():
    p = mkpartial(0, 1, 300, id=7)
    record = p.asrecord()
    assert record['id'] == 7
    assert set(record['points'][0]) == {'time', 'freq', 'amplitude'}
    assert Partial.fromrecord(record) == p


def test_partial_resampled():
    p = Partial([0, 1], [100, 200], [-10, -20])
    r = p.resampled(11)
    assert r.numpoints == 11
    assert r.freqs[5] == pytest.approx(150)
    assert r.id == p.id


def test_ids_assigned(spectrum):
    ids = spectrum.ids()
    assert len(set(ids)) == 3
    assert 3 in ids
    assert all(id != UNSETID for id in ids)
    # sorted by start time
    assert [p.t0 for p in spectrum] == sorted(p.t0 for p in spectrum)


def test_duplicate_ids():
    with pytest.raises(ValueError):
        Spectrum([mkpartial(0, 1, 100, id=1), mkpartial(0, 1, 200, id=1)])


def test_queries(spectrum):
    assert spectrum.t0 == 0
    assert spectrum.t1 == 2.0
    assert len(spectrum.partials_at(0.1)) == 1
    assert len(spectrum.partials_between(0.6, 0.7)) == 3
    data = spectrum.data_at(0.6)
    assert [round(freq) for _, freq, _ in data][0] < 440
    assert len(spectrum.data_at(0.6, minamp=-30)) == 2
    assert len(spectrum.filter(minamp=-30)) == 2
    assert len(spectrum.filter(mindur=1)) == 1
    assert spectrum.get(3).meanfreq > 440
    assert spectrum.get(100) is None


def test_replaced(spectrum):
    ids = spectrum.ids()
    p = spectrum.get(3).transposed(2)
    new = mkpartial(0, 1, 1000)
    out, newids = spectrum.replaced([3], [p, new])
    assert newids[0] == 3
    assert newids[1] not in ids
    assert len(out) == 4
    assert out.get(3).meanfreq == pytest.approx(spectrum.get(3).meanfreq * 2)
    # the original is untouched
    assert len(spectrum) == 3


def test_merge(spectrum):
    merged = spectrum + spectrum
    assert len(merged) == 6
    assert len(set(merged.ids())) == 6


def test_records_and_arrays(spectrum):
    assert sinetrck.fromrecords(spectrum.asrecords()) == spectrum
    arrays = spectrum.asarrays()
    assert arrays[0].shape == (3, 3)
    again = sinetrck.spectrum.fromarray(arrays, ids=spectrum.ids())
    assert again == spectrum


def test_renumbered(spectrum):
    assert spectrum.renumbered().ids() == [0, 1, 2]

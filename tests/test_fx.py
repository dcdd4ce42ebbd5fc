import numpy as np
import pytest
import bpf4 as bpf

from sinetrck import fx, Partial
from sinetrck.const import UNSETID, MINFREQ
from sinetrck.errors import ConfigurationError
from sinetrck.util import f2m


def mkpartial(t0, t1, f0, f1, amp=-20., id=UNSETID, numpoints=5):
    return Partial(np.linspace(t0, t1, numpoints), np.linspace(f0, f1, numpoints),
                   np.full(numpoints, amp), id=id)


@pytest.fixture
def selection():
    return [mkpartial(0.0, 1.0, 200, 200, id=0),
            mkpartial(0.5, 2.0, 400, 800, id=1),
            mkpartial(1.0, 1.5, 1000, 900, amp=-30, id=2)]


def assert_valid(partials):
    for p in partials:
        assert np.all(np.diff(p.times) >= 0)
        assert np.all(p.freqs > 0)
        assert np.all(np.isfinite(p.amps))


def test_transpose(selection):
    out = fx.transpose(selection, 2)
    assert [p.id for p in out] == [0, 1, 2]
    assert np.allclose(out[1].freqs, selection[1].freqs * 2)
    with pytest.raises(ConfigurationError):
        fx.transpose(selection, 0)


def test_timestretch(selection):
    out = fx.timestretch(selection, 2, anchor='start')
    assert out[0].t0 == 0
    assert out[1].t1 == pytest.approx(4.0)
    out = fx.timestretch(selection, 2, anchor='end')
    assert max(p.t1 for p in out) == pytest.approx(2.0)
    out = fx.timestretch(selection, 0.5, anchor='center')
    assert min(p.t0 for p in out) == pytest.approx(0.5)
    assert max(p.t1 for p in out) == pytest.approx(1.5)
    with pytest.raises(ConfigurationError):
        fx.timestretch(selection, -1)
    with pytest.raises(ConfigurationError):
        fx.timestretch(selection, 2, anchor='middle')


def test_shift_clamps(selection):
    out = fx.shift(selection, dt=-0.5, df=-300)
    assert_valid(out)
    assert out[0].t0 == 0
    assert np.all(out[0].freqs == MINFREQ)
    assert np.allclose(out[1].times, selection[1].times - 0.5)


def test_invert(selection):
    out = fx.invert(selection)
    # frequency range 200-1000, center 600
    assert np.allclose(out[0].freqs, 1000)
    assert np.allclose(out[2].freqs, 1200 - selection[2].freqs)
    assert_valid(out)


def test_reverse(selection):
    out = fx.reverse(selection)
    assert_valid(out)
    # time range 0-2
    assert out[0].t0 == pytest.approx(1.0)
    assert out[0].t1 == pytest.approx(2.0)
    assert out[1].freqs[0] == 800
    twice = fx.reverse(out)
    for p0, p1 in zip(selection, twice):
        assert p0 == p1


def test_rotate(selection):
    assert fx.rotate(selection, 360) == selection
    out = fx.rotate(selection, 90)
    assert_valid(out)
    assert [p.id for p in out] == [0, 1, 2]
    # a flat partial becomes (nearly) vertical
    assert out[0].duration < selection[0].duration


def test_rotate_degenerate():
    flat = [mkpartial(0, 1, 440, 440)]
    assert fx.rotate(flat, 45) == flat
    assert fx.perpendicular(flat) == flat


def test_zero_time_range():
    # partials whose breakpoints all sit at the same time
    stacked = [Partial([1., 1.], [300., 350.], [-20., -20.], id=0),
               Partial([1., 1.], [600., 500.], [-20., -20.], id=1)]
    assert fx.explode(stacked) == stacked
    assert fx.rotate(stacked, 30) == stacked
    assert fx.perpendicular(stacked) == stacked
    assert fx.amp_envelope(stacked, [(0, 0), (1, 1)]) == stacked



def test_perpendicular(selection):
    out = fx.perpendicular(selection)
    assert_valid(out)
    # the first partial is at the lowest frequency, it ends at the start time
    assert out[0].t0 == pytest.approx(0)
    assert out[0].t1 == pytest.approx(0)


def test_explode(selection):
    out = fx.explode(selection, order='ascending')
    starts = sorted(p.t0 for p in out)
    assert starts == pytest.approx([0.0, 1.0, 2.0])
    byid = {p.id: p for p in out}
    assert byid[0].t0 == 0
    assert byid[2].t0 == 2.0
    out = fx.explode(selection, order='descending')
    assert {p.id: p for p in out}[2].t0 == 0
    out = fx.explode(selection, order='random', rng=np.random.default_rng(0))
    assert sorted(p.t0 for p in out) == pytest.approx([0.0, 1.0, 2.0])
    assert fx.explode(selection[:1]) == selection[:1]


def test_quantize_time(selection):
    out = fx.quantize_time(selection, 0.5)
    for p in out:
        assert np.allclose(np.mod(p.times, 0.5), 0)
    assert_valid(out)


def test_quantize_bpm(selection):
    out = fx.quantize_bpm(selection, bpm=120, division=4)
    for p in out:
        assert np.allclose(np.mod(p.times + 1e-9, 0.5), 0, atol=1e-6)
    out = fx.quantize_bpm(selection, bpm=60, division=3)
    for p in out:
        assert np.allclose(np.round(p.times * 3), p.times * 3)


def test_quantize_freq():
    p = [mkpartial(0, 1, 433, 447)]
    out = fx.quantize_freq(p, 100)
    assert np.allclose(out[0].freqs, 400)
    out = fx.quantize_freq(p, 1, mode='semitones')
    assert np.allclose(out[0].freqs, 440)
    with pytest.raises(ConfigurationError):
        fx.quantize_freq(p, 1, mode='cents')


def test_quantize_scale():
    # C#4 (277.18 Hz) is not in C major
    p = [mkpartial(0, 1, 277.18, 277.18)]
    out = fx.quantize_scale(p, root=0, scale='major')
    midi = f2m(out[0].freqs[0])
    assert round(midi) in (60, 62)
    assert midi == pytest.approx(round(midi))
    out = fx.quantize_scale(p, root=1, scale='major')
    assert f2m(out[0].freqs[0]) == pytest.approx(61, abs=0.01)
    with pytest.raises(ConfigurationError):
        fx.quantize_scale(p, scale='bebop')


def test_quantize_scale_wraps_octave():
    # B3 (59) quantized to the octaves of C goes up to C4
    p = [mkpartial(0, 1, 246.94, 246.94)]
    out = fx.quantize_scale(p, root=0, scale='octaves')
    assert f2m(out[0].freqs[0]) == pytest.approx(60, abs=0.01)


def test_add_harmonics(selection):
    out = fx.add_harmonics(selection[:1], numharmonics=3, rolloff=6)
    assert len(out) == 4
    assert out[0] is selection[0]
    assert all(p.id == UNSETID for p in out[1:])
    assert np.allclose(out[1].freqs, 400)
    assert np.allclose(out[1].amps, -26)
    odd = fx.add_harmonics(selection[:1], numharmonics=4, oddonly=True)
    assert sorted(round(p.meanfreq) for p in odd[1:]) == [600, 1000]
    high = [mkpartial(0, 1, 15000, 15000)]
    assert fx.add_harmonics(high) == high


def test_vibrato():
    p = [mkpartial(0, 1, 440, 440, numpoints=2)]
    out = fx.vibrato(p, rate=5, depth=100)
    assert out[0].numpoints >= 50
    assert out[0].maxfreq == pytest.approx(440 * 2**(100 / 1200), rel=0.01)
    assert out[0].minfreq == pytest.approx(440 * 2**(-100 / 1200), rel=0.01)
    assert np.allclose(out[0].amps, -20)
    trem = fx.vibrato(p, depth=0, tremrate=4, tremdepth=6)
    assert trem[0].amps.max() == pytest.approx(-14, abs=0.1)


def test_chorus(selection):
    out = fx.chorus(selection[:1], voices=3, detune=10, rng=np.random.default_rng(0))
    assert len(out) == 3
    ratios = sorted(p.meanfreq / 200 for p in out[1:])
    assert ratios[0] == pytest.approx(1)
    assert ratios[1] == pytest.approx(2**(10 / 1200))
    five = fx.chorus(selection[:1], voices=5, detune=10, rng=np.random.default_rng(0))
    assert min(p.meanfreq for p in five) == pytest.approx(200 * 2**(-5 / 1200))
    assert_valid(out)


def test_freeze(selection):
    out = fx.freeze(selection)
    assert np.allclose(out[1].freqs, 400)
    assert np.allclose(out[1].times, selection[1].times)
    assert [p.id for p in out] == [0, 1, 2]


def test_freeze_duration():
    p = Partial([0.5, 1.0, 1.5], [400., 500., 450.], [-20., -10., -30.], id=1)
    out = fx.freeze([p], duration=3.0)[0]
    assert out.t1 == pytest.approx(3.5)
    assert out.numpoints == 4
    assert np.allclose(out.freqs, 400)
    assert out.amps[-1] == -30
    assert np.allclose(out.amps[:3], p.amps)
    assert out.id == 1
    # a duration shorter than the partial does not shorten it
    assert fx.freeze([p], duration=0.5)[0].t1 == pytest.approx(1.5)
    single = Partial([1.0], [300.], [-6.])
    assert fx.freeze([single], duration=2)[0] is single


def test_smear():
    times = np.linspace(0, 1, 11)
    freqs = np.where(np.arange(11) % 2 == 0, 400., 600.)
    p = Partial(times, freqs, np.full(11, -20.))
    out = fx.smear([p], amount=1.0)[0]
    assert out.maxfreq - out.minfreq < 200
    assert out.t0 == 0 and out.t1 == 1


def test_smear_holds_edges():
    n = 50
    p = Partial(np.linspace(0, 1, n), 400. + 10 * np.arange(n), np.full(n, -20.))
    out = fx.smear([p], amount=0.5)[0]
    assert out.numpoints == n
    # the window spans 7 breakpoints at each side; indices beyond the
    # partial repeat its first/last breakpoint
    offsets = np.arange(-7, 8)
    weights = np.exp(-0.5 * (offsets / 8)**2)
    first = (p.freqs[np.clip(offsets, 0, n - 1)] * weights).sum() / weights.sum()
    assert out.freqs[0] == pytest.approx(first)
    assert out.freqs[-1] == pytest.approx(2 * 400 + 10 * (n - 1) - first)
    # a symmetric window leaves a linear ramp untouched away from the edges
    assert np.allclose(out.freqs[7:n-7], p.freqs[7:n-7])



def test_amp_envelope(selection):
    out = fx.amp_envelope(selection, [(0, 0.5), (1, 0.5)])
    assert np.allclose(out[0].amps, selection[0].amps)
    out = fx.amp_envelope(selection, [(0, 0), (1, 1)])
    # normalized time 0 -> +12 dB, 1 -> -24 dB
    assert out[0].amps[0] == pytest.approx(-8)
    assert out[1].amps[-1] == pytest.approx(-44)
    curve = bpf.linear(0, 0.5, 1, 1)
    out = fx.amp_envelope(selection, curve)
    assert out[1].amps[-1] == pytest.approx(-44)


def test_equalize(selection):
    out = fx.equalize(selection, [(100, 0), (1000, -12)])
    assert out[2].amps[0] == pytest.approx(-42)
    # constant outside the curve
    out = fx.equalize(selection, [(500, -6), (600, 6)])
    assert np.allclose(out[0].amps, -26)
    assert out[2].amps[0] == pytest.approx(-24)
    out = fx.equalize(selection, [(0, 0.05), (10000, 0.05)])
    assert np.allclose(out[0].amps, selection[0].amps)


def test_single_pair_curves(selection):
    p = Partial([0.5], [440.], [-10.])
    assert fx.equalize([p], [(1000, 3.0)])[0].amps[0] == pytest.approx(-7)
    out = fx.equalize(selection, [(1000, 3.0)])
    assert np.allclose(out[1].amps, selection[1].amps + 3)
    out = fx.amp_envelope(selection, [(0.3, 0)])
    assert np.allclose(out[2].amps, selection[2].amps + 12)



def test_spectral_delay(selection):
    out = fx.spectral_delay(selection, maxdelay=1, freqlow=200, freqhigh=1000)
    assert len(out) == 3
    byid = {p.id: p for p in out}
    assert byid[0].t0 == pytest.approx(0)
    assert byid[2].t0 > selection[2].t0
    out = fx.spectral_delay(selection, maxdelay=1, freqlow=200, freqhigh=1000,
                            mode='highfirst', repeats=2, decay=-6)
    assert len(out) == 9
    assert out[0].t0 == pytest.approx(1.0)
    echoes = out[3:]
    assert all(p.id == UNSETID for p in echoes)
    assert echoes[1].amps[0] == pytest.approx(-32)


def test_spectral_reverb(selection):
    out = fx.spectral_reverb(selection, density=4, mix=0.5, rng=np.random.default_rng(0))
    assert len(out) > 3
    assert np.allclose(out[0].amps, selection[0].amps - 3)
    assert all(p.meanamp > -60 for p in out[3:])
    assert_valid(out)


def test_formant_shift(selection):
    assert fx.formant_shift(selection, 0) == selection
    out = fx.formant_shift(selection, 12)
    assert np.allclose(out[0].freqs, 400)
    out = fx.formant_shift(selection, 12, preservepitch=True)
    assert np.allclose(out[0].freqs, 200)
    assert np.allclose(out[2].freqs, selection[2].freqs * 2)


def test_merge(selection):
    out = fx.merge(selection)
    assert len(out) == 1
    assert out[0].numpoints == 15
    assert out[0].id == UNSETID
    assert np.all(np.diff(out[0].times) >= 0)
    assert fx.merge(selection[:1]) == selection[:1]


def test_split(selection):
    out = fx.split(selection[:1])
    assert len(out) == 2
    assert out[0].numpoints == 3
    assert out[1].numpoints == 3
    assert out[0].t1 == out[1].t0
    short = [mkpartial(0, 1, 200, 200, numpoints=3)]
    assert fx.split(short) == short

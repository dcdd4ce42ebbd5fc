import numpy as np
import pytest

from sinetrck import fft
from sinetrck.errors import ConfigurationError
from sinetrck.peaks import parabolic_peak, find_peaks


def test_fft_matches_dft():
    rng = np.random.default_rng(0)
    x = rng.normal(size=64)
    n = np.arange(64)
    dft = np.exp(-2j * np.pi * np.outer(n, n) / 64) @ x
    assert np.allclose(fft.fft(x), dft)


def test_fft_frames():
    rng = np.random.default_rng(0)
    frames = rng.normal(size=(3, 32))
    out = fft.fft(frames)
    assert out.shape == (3, 32)
    for frame, spectrum in zip(frames, out):
        assert np.allclose(fft.fft(frame), spectrum)


def test_fft_size_not_power_of_two():
    with pytest.raises(ConfigurationError):
        fft.fft(np.zeros(100))


def test_windows():
    for kind in fft.WINDOWS:
        w = fft.makewindow(kind, 1024)
        assert len(w) == 1024
        assert np.allclose(w, w[::-1])
        assert w.max() <= 1.0 + 1e-12
    hann = fft.makewindow('hann', 1024)
    assert hann[0] == pytest.approx(0, abs=1e-12)
    with pytest.raises(ConfigurationError):
        fft.makewindow('rectangular', 1024)


def test_magnitude_spectrum_of_sine():
    sr, size = 8000, 256
    freq = 16 * sr / size     # exactly on bin 16
    x = 0.5 * np.sin(2 * np.pi * freq * np.arange(size) / sr)
    window = fft.makewindow('hann', size)
    mags = fft.magnitude_spectrum(x, window) * fft.window_gain(window)
    assert len(mags) == size // 2
    assert np.argmax(mags) == 16
    assert mags[16] == pytest.approx(0.5, rel=0.02)


def test_parabola_vertex():
    # samples of a parabola with vertex at offset 0.3
    def parabola(x):
        return 1 - (x - 0.3)**2
    p, mag = parabolic_peak(parabola(-1), parabola(0), parabola(1))
    assert p == pytest.approx(0.3)
    assert mag == pytest.approx(1.0)
    # sampled centered at the vertex, the offset is 0
    p, _ = parabolic_peak(parabola(-0.7), parabola(0.3), parabola(1.3))
    assert p == pytest.approx(0, abs=1e-12)


def test_parabola_not_concave():
    p, mag = parabolic_peak(1., 1., 1.)
    assert p == 0
    assert mag == 1.


def test_find_peaks():
    sr, size = 44100, 2048
    t = np.arange(size) / sr
    x = 0.5 * np.sin(2 * np.pi * 1000 * t) + 0.05 * np.sin(2 * np.pi * 3000 * t)
    window = fft.makewindow('hann', size)
    mags = fft.magnitude_spectrum(x, window) * fft.window_gain(window)
    peaks = find_peaks(mags, sr=sr, fftsize=size, minamp=-60)
    assert len(peaks) >= 2
    binwidth = sr / size
    assert abs(peaks[0].freq - 1000) < binwidth
    assert abs(peaks[1].freq - 3000) < binwidth
    assert peaks[0].amp > peaks[1].amp
    # band limits and max. number of peaks
    peaks = find_peaks(mags, sr=sr, fftsize=size, freqmax=2000)
    assert all(peak.freq <= 2000 for peak in peaks)
    assert len(find_peaks(mags, sr=sr, fftsize=size, maxpeaks=1)) == 1


def test_find_peaks_silence():
    assert find_peaks(np.zeros(1024), sr=44100, fftsize=2048) == []

import numpy as np
import pytest

import sinetrck
from sinetrck.analysis import AnalysisPass, analysis_options, numframes
from sinetrck.errors import ConfigurationError

from conftest import makesine


def test_pure_sine(sine):
    spectrum = sinetrck.analyze(sine, 44100, fftsize=2048, hopsize=512)
    loud = [p for p in spectrum if p.meanamp > -40]
    assert len(loud) == 1
    partial = loud[0]
    assert abs(partial.meanfreq - 440) < 44100 / 2048 / 2
    # a sine of amplitude 0.5 is at -6 dB
    assert abs(partial.meanamp - (-6.02)) < 1
    assert partial.t0 == 0


def test_frame_times(sine):
    spectrum = sinetrck.analyze(sine, 44100, fftsize=2048, hopsize=512)
    partial = max(spectrum, key=lambda p: p.meanamp)
    assert np.allclose(np.diff(partial.times), 512 / 44100)


def test_silence():
    spectrum = sinetrck.analyze(np.zeros(44100), 44100)
    assert len(spectrum) == 0


def test_short_signal():
    # shorter than the window: analyzed as a single padded frame
    assert numframes(1000, 2048, 512) == 1
    spectrum = sinetrck.analyze(makesine(dur=0.02), 44100, mindur=0)
    assert len(spectrum) == 0


def test_two_sines():
    samples = makesine(440, 0.3) + makesine(1500, 0.3)
    spectrum = sinetrck.analyze(samples, 44100)
    loud = sorted((p for p in spectrum if p.meanamp > -30), key=lambda p: p.meanfreq)
    assert len(loud) == 2
    assert abs(loud[0].meanfreq - 440) < 11
    assert abs(loud[1].meanfreq - 1500) < 11


def test_freq_band(sine):
    spectrum = sinetrck.analyze(sine, 44100, freqmin=1000)
    assert all(p.minfreq >= 1000 for p in spectrum)


def test_maxpartials():
    samples = makesine(440, 0.3) + makesine(1500, 0.1)
    spectrum = sinetrck.analyze(samples, 44100, maxpartials=1)
    assert len(spectrum) == 1
    assert abs(spectrum[0].meanfreq - 440) < 11


def test_progress(sine):
    steps = []
    sinetrck.analyze(sine, 44100, yieldevery=10, progress=steps.append)
    assert steps[-1].stage == "done"
    assert steps[-1].done == steps[-1].total
    tracking = [step for step in steps if step.stage == "tracking"]
    assert len(tracking) > 1
    assert all(b.done > a.done for a, b in zip(tracking, tracking[1:]))


def test_cancel(sine):
    apass = AnalysisPass(sine, 44100, yieldevery=5)
    steps = apass.steps()
    next(steps)
    steps.close()
    assert apass.result is None


def test_invalid_options(sine):
    with pytest.raises(ConfigurationError):
        sinetrck.analyze(sine, 44100, fftsize=1000)
    with pytest.raises(ConfigurationError):
        sinetrck.analyze(sine, 44100, fftsize=512, hopsize=1024)
    with pytest.raises(ConfigurationError):
        sinetrck.analyze(sine, 44100, freqmin=5000, freqmax=1000)
    with pytest.raises(ConfigurationError) as excinfo:
        sinetrck.analyze(sine, 44100, window='kaiser')
    assert excinfo.value.param == "window"
    with pytest.raises(ConfigurationError):
        sinetrck.analyze(np.zeros((100, 2)), 44100)
    with pytest.raises(ConfigurationError):
        sinetrck.analyze(sine, 0)


def test_options_from_config(defaultconfig):
    defaultconfig['analysis.fftsize'] = 4096
    options = analysis_options(hopsize=256)
    assert options.fftsize == 4096
    assert options.hopsize == 256

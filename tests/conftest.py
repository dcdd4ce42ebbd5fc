import numpy as np
import pytest

from sinetrck import config


@pytest.fixture(autouse=True)
def defaultconfig(monkeypatch):
    # a fresh config with default values which is never saved to disk
    d = config.ConfigDict(allowedkeys=config.DEFAULT_CONFIG.keys())
    d.update(config.DEFAULT_CONFIG)
    monkeypatch.setattr(config, "_CONFIG", d)
    return d


def makesine(freq=440., amp=0.5, dur=1.0, sr=44100):
    t = np.arange(int(dur * sr)) / sr
    return amp * np.sin(2 * np.pi * freq * t)


@pytest.fixture
def sine():
    return makesine()


@pytest.fixture
def whitenoise():
    rng = np.random.default_rng(1)
    return rng.normal(0, 0.1, 2 * 22050)

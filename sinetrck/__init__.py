"""

SINETRCK
========

Sinusoidal partial analysis, editing and resynthesis

"""
from .spectrum import *
from .partial import Partial, Point
from . import synthesis
from .synthesis import synthesize
from .analysis import *
from .noise import NoiseEnvelope, analyze_noise, synthesize_noise
from . import fx
from .session import Session
from .errors import SinetrckError, ConfigurationError, DegenerateInputError
from .config import getconfig, resetconfig
from .version import __version__

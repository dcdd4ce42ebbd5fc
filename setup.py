"""
sinetrck
"""

from setuptools import setup

def get_version():
    d = {}
    with open("sinetrck/version.py") as f:
        code = f.read()
    exec(code, d)
    version = d.get('__version__', (0, 0, 0))
    return ("%d.%d.%d" % version).strip()

with open('README.md') as f:
    long_description = f.read()


setup(
    name    = "sinetrck",
    version = get_version(),     # update sinetrck/version.py
    description = "Sinusoidal partial tracking, editing and resynthesis",
    long_description = long_description,
    long_description_content_type='text/markdown',
    # installation
    packages = ["sinetrck"],
    python_requires = ">=3.8",
    install_requires = [
        "numpy>=1.20",
        "bpf4>=0.7",
        "notifydict",
        "appdirs",
        "pitchtools>=1.14",
    ],
    extras_require = {
        'test': ["pytest"]
    }
)

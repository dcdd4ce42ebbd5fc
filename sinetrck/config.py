from notifydict import NotifyDict
import appdirs
import os
import json
import logging


logger = logging.getLogger("sinetrck")


class ConfigDict(NotifyDict):
    def __init__(self, allowedkeys):
        self._allowedkeys = allowedkeys
        NotifyDict.__init__(self)

    def __setitem__(self, key, value):
        if key in self._allowedkeys:
            isvalid, errormsg = _config_value_isvalid(key, value)
            if isvalid:
                NotifyDict.__setitem__(self, key, value)
            else:
                raise ValueError(errormsg)
        else:
            raise KeyError(f"Unknown key: {key}")

    def set(self, key, value):
        return self.__setitem__(key, value)

    def override(self, value, key):
        """
        If value is not None, return value directly
        Otherwise, return config[key]

        key must be present in the dict

        This operation is the opposite of .get, in the sense that
        the value given is queried before the value stored
        in this config (config is not modified)
        """
        if value is not None:
            return value
        if key not in self._allowedkeys:
            raise KeyError(f"Unknown key: {key}")
        return self.get(key, DEFAULT_CONFIG[key])


DEFAULT_CONFIG = {
    'analysis.fftsize': 2048,
    'analysis.hopsize': 512,
    'analysis.window': 'hann',
    'analysis.minamp': -60.0,
    'analysis.maxpartials': 500,
    'analysis.mindur': 50.0,
    'analysis.freqtolerance': 50.0,
    'analysis.freqmin': 20.0,
    'analysis.freqmax': 8000.0,
    'analysis.maxpeaks': 100,
    'analysis.yieldevery': 100,
    'noise.fftsize': 2048,
    'noise.hopsize': 512,
    'noise.numbands': 64,
    'noise.mix': 0.3,
    'synthesis.fadetime': 0.005,
    'synthesis.headroom': 0.1,
    'synthesis.normalize': True,
    'synthesis.normpeak': 0.9,
    'session.maxundo': 50,
    'A4': 440.0
}


_CONFIG_VALIDATOR = {
    'analysis.window::choices': ('hann', 'hamming', 'blackman'),
    'analysis.fftsize::choices': tuple(2**i for i in range(4, 17)),
    'noise.fftsize::choices': tuple(2**i for i in range(4, 17)),
}


def config_getpath():
    configbasedir = appdirs.user_config_dir()
    app = 'sinetrck'
    configname = 'config.json'
    configdir = os.path.join(configbasedir, app)
    if not os.path.exists(configdir):
        logger.debug(f"Creating config directory: {configdir}")
        os.makedirs(configdir)
    return os.path.join(configdir, configname)


def config_getchoices(key):
    """
    Return a seq. of possible values for key `k`
    or None
    """
    return _CONFIG_VALIDATOR.get(key + "::choices", None)


def config_gettype(key):
    default = DEFAULT_CONFIG.get(key)
    if default is None:
        raise KeyError("Key is not present in default config")
    valuetype = type(default)
    if valuetype is float:
        # an int is accepted wherever a float is expected
        return (float, int)
    return valuetype


def _wrapdict(d, saveit=True):
    path = config_getpath()

    def saveconfig(d, path=path):
        logger.debug(f"Saving config to {path}")
        with open(path, "w") as f:
            json.dump(dict(d), f, indent=True)

    d2 = ConfigDict(allowedkeys=DEFAULT_CONFIG.keys())
    d2.update({key: value for key, value in d.items() if key in DEFAULT_CONFIG})
    d2.register(lambda *args: saveconfig(d2))
    if saveit:
        saveconfig(d2)
    return d2


def _config_isvalid(d):
    for k, v in d.items():
        if k not in DEFAULT_CONFIG:
            return False, f"Unknown key: {k}"
        isvalid, errorstr = _config_value_isvalid(k, v)
        if not isvalid:
            return False, errorstr
    return True, None


def _config_value_isvalid(key, value):
    """
    Returns isvalid, errormsg

    where:
        isvalid: is True if value is a possible value for key
        errormsg: None if value is valid, an error string otherwise
    """
    choices = config_getchoices(key)
    if choices is not None:
        if value not in choices:
            return False, f"key should be one of {choices}, got {value}"
    valuetype = config_gettype(key)
    if isinstance(value, bool) and valuetype is not bool:
        return False, f"Expected type {valuetype} for {key}, got a bool"
    if not isinstance(value, valuetype):
        vtype = type(value)
        return False, f"Expected type {valuetype} for {key}, got {vtype}"
    return True, None


def _read_config():
    configpath = config_getpath()
    d = DEFAULT_CONFIG
    if not os.path.exists(configpath):
        logger.debug("Using default config")
        return _wrapdict(d.copy(), saveit=False)
    logger.debug(f"Reading config from disk: {configpath}")
    try:
        with open(configpath) as f:
            configdict = json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"Could not read config {configpath}: {e}")
        logger.debug("Using default config")
        return _wrapdict(d.copy(), saveit=False)
    isvalid, errorstr = _config_isvalid(configdict)
    if not isvalid:
        logger.error(f"Could not validate config: \n {errorstr}")
        logger.debug("Using default config")
        return _wrapdict(d.copy(), saveit=False)
    if d.keys() - configdict.keys():
        logger.warning("DEFAULT_CONFIG has keys not present in read config. "
                       "Consider calling resetconfig()")
        configdict = {**d, **configdict}
    return _wrapdict(configdict, saveit=False)


_CONFIG = None


def getconfig():
    """
    Return a dictionary with all configuration options. This is a
    persistent dictionary, in the sense that changes done to it
    are saved and retrieved in a future session. To reset the
    config to default values, call resetconfig()
    """
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = _read_config()
    return _CONFIG


def resetconfig():
    path = config_getpath()
    if os.path.exists(path):
        logger.debug(f"Removing saved config at: {path}")
        os.remove(path)
    global _CONFIG
    _CONFIG = _wrapdict(DEFAULT_CONFIG.copy(), saveit=False)
    return _CONFIG

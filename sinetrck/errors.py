class SinetrckError(Exception):
    pass


class ConfigurationError(SinetrckError, ValueError):
    """
    A parameter was rejected before any processing took place

    stage: the processing stage which rejected the value
           ("analysis", "noise", "synthesis", "transform")
    param: the name of the offending parameter
    """
    def __init__(self, msg: str, stage: str = "", param: str = "") -> None:
        self.stage = stage
        self.param = param
        if stage or param:
            msg = f"[{stage}:{param}] {msg}"
        super().__init__(msg)


class DegenerateInputError(SinetrckError, ValueError):
    """
    The data itself can't be processed (a partial without points,
    an empty selection where data is needed, etc)
    """
    pass

from typing import (
    Optional as Opt,
    Union as U,
    List,
    Tuple as Tup,
    Sequence as Seq,
    Iterable as Iter,
    Iterator,
    Callable as Fun,
    Dict,
    Any,
    Generator,
    NamedTuple
)

Record = Dict[str, Any]

import os
import sys
from typing import IO, List, Optional

STDIN_MARKER = "-"


def join_value(words: List[str]) -> str:
    return " ".join(words)


def _read_all(stdin: IO) -> bytes:
    # values are opaque bytes, so read below the text layer when there is one
    data = getattr(stdin, "buffer", stdin).read()
    if isinstance(data, str):
        data = os.fsencode(data)
    return data


def resolve_value(arg: str, stdin: Optional[IO] = None) -> bytes:
    """Return the bytes to store for arg.

    A lone "-" means: read the value from stdin, unless stdin is a terminal,
    in which case the "-" itself is the value. Literal arguments are encoded
    with os.fsencode so undecodable argv bytes come back unchanged.
    """
    stdin = stdin if stdin is not None else sys.stdin
    arg = arg.strip()
    if arg == STDIN_MARKER and not stdin.isatty():
        data = _read_all(stdin)
        if data.endswith(b"\n"):
            data = data[:-1]
        return data.strip()
    return os.fsencode(arg)

"""
Length-prefixed frames: a 4-byte little-endian length, ``\\n``, then payload.

Built on exact-length reads, so a frame is never split or merged no matter
how the child's writes are chunked.
"""
import struct
import time
from typing import Optional

from .errors import FrameError

_LENGTH = struct.Struct("<I")
_SEPARATOR = b"\n"


def encode_frame(payload: bytes) -> bytes:
    """
    Return ``payload`` with its length prefix and separator.
    """
    return _LENGTH.pack(len(payload)) + _SEPARATOR + payload


def read_frame(handle, timeout_ms: int = -1) -> Optional[bytes]:
    """
    Read one frame from the child's stdout; return its payload.

    :param handle: A :class:`pysubpipe.ProcessHandle` with stdout captured.
    :param timeout_ms: Total milliseconds for the whole frame (``-1``: no
                       limit).
    :return: The payload, or None if EOF or the timeout cut the frame short.
             (Bytes already read are gone: a timed-out stream is out of step.)
    :raises pysubpipe.FrameError: if the byte after the length is not ``\\n``.
    """
    deadline = None if timeout_ms < 0 else time.monotonic() + timeout_ms / 1000

    def read_exactly(n: int) -> Optional[bytes]:
        if deadline is None:
            remaining_ms = -1
        else:
            remaining_ms = max(0, int((deadline - time.monotonic()) * 1000))
        data = handle.read_stdout(n, remaining_ms)
        return data if len(data) == n else None

    header = read_exactly(_LENGTH.size)
    if header is None:
        return None
    (length,) = _LENGTH.unpack(header)

    separator = read_exactly(1)
    if separator is None:
        return None
    if separator != _SEPARATOR:
        raise FrameError("Expected %r after frame length, got %r" % (_SEPARATOR, separator))

    if length == 0:
        return b""
    return read_exactly(length)

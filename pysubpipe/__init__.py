"""
Drive a child process through its stdin, stdout and stderr pipes.

How to use
~~~~~~~~~~

Call :func:`pysubpipe.spawn` with a program, its arguments and a
:class:`pysubpipe.SpawnOptions` naming the streams you want to capture. It
returns a :class:`pysubpipe.ProcessHandle` you read from, write to and
finally close::

    import pysubpipe

    options = pysubpipe.SpawnOptions(use_stdin=True, use_stdout=True)
    with pysubpipe.spawn("cat", [], options) as child:
        child.write(b"ping\\n")
        child.close_stdin()  # cat exits when it reads EOF

        output = child.read_all_stdout()  # b"ping\\n"
        exit_code = child.wait()  # 0

Every call is synchronous. Nothing runs in the background: no threads, no
event loop, no callbacks. To follow an interactive child (a REPL, a
debugger), poll::

    while child.is_running() or not child.is_stdout_eof():
        data = child.read_stdout(timeout_ms=100)  # b"" after 100ms of silence
        ...

Reads
~~~~~

``read_stdout(num_bytes=None, timeout_ms=-1)`` (and ``read_stderr()``)
combine two knobs:

* ``num_bytes=None`` returns whatever one read yields (at most
  :data:`CHUNK_SIZE` bytes). ``num_bytes=N`` keeps reading until exactly
  ``N`` bytes have arrived, returning fewer only on EOF or timeout.
* ``timeout_ms=-1`` waits forever; ``0`` returns only what is already
  buffered; ``T > 0`` waits at most ``T`` milliseconds in total.

EOF and timeouts are never exceptions: reads just return fewer bytes.
:meth:`ProcessHandle.is_stdout_eof` tells them apart, and stays True once
set. :func:`pysubpipe.read_frame` reads length-prefixed frames.

Stopping
~~~~~~~~

:meth:`ProcessHandle.terminate` sends ``SIGTERM``, waits a few seconds, then
sends ``SIGKILL``. (Windows has no polite signal: it kills at once.)
:meth:`ProcessHandle.close` kills the child if needed and releases every
pipe. A child killed by a signal reports :data:`SIGNALED_EXIT_CODE`.
"""
from ._backend import SIGNALED_EXIT_CODE
from .encoding import build_command_line, build_environment_block
from .errors import (
    EncodingError,
    FrameError,
    IoError,
    PipeCreationError,
    PysubpipeError,
    SpawnError,
)
from .framing import encode_frame, read_frame
from .options import SpawnOptions
from .process import CHUNK_SIZE, GRACE_PERIOD, ProcessHandle, spawn

__all__ = [
    "spawn",
    "ProcessHandle",
    "SpawnOptions",
    "PysubpipeError",
    "EncodingError",
    "SpawnError",
    "PipeCreationError",
    "IoError",
    "FrameError",
    "SIGNALED_EXIT_CODE",
    "CHUNK_SIZE",
    "GRACE_PERIOD",
    "read_frame",
    "encode_frame",
    "build_command_line",
    "build_environment_block",
]

__version__ = "0.1.0"

import logging
import os
import sys
import time
from typing import List, Optional, Sequence, Union

from ._backend import SIGNALED_EXIT_CODE, Launched, NativeProcess, PipeEndpoint
from .errors import IoError
from .options import SpawnOptions

if sys.platform == "win32":
    from . import _windows as _platform
else:
    from . import _posix as _platform

logger = logging.getLogger(__name__)

CHUNK_SIZE = 4096
"""
Most bytes a default-length read returns.
"""

POLL_INTERVAL = 0.02
"""
Longest single wait (seconds) while polling a pipe for readiness.
"""

LIVENESS_POLL_INTERVAL = 0.05
"""
Seconds between liveness checks while waiting out a graceful shutdown.
"""

GRACE_PERIOD = 3.0
"""
Seconds a child gets to exit after a graceful termination request.
"""

WRITE_BACKOFF = 0.001
"""
Seconds to sleep when a write would block.
"""


def _deadline(timeout_ms: int) -> Optional[float]:
    if timeout_ms < 0:
        return None
    return time.monotonic() + timeout_ms / 1000


class _StreamReader:
    """
    Reads one of the child's output streams and latches its EOF flag.
    """

    def __init__(self, name: str, endpoint: Optional[PipeEndpoint]):
        self.name = name
        self.endpoint = endpoint
        self.eof = False

    @property
    def usable(self) -> bool:
        return (
            self.endpoint is not None and not self.endpoint.closed and not self.eof
        )

    def _wait_readable(self, deadline: Optional[float]) -> bool:
        if deadline is None:
            return True  # endpoint.read() blocks for us

        # Pipes can't be waited on uniformly across platforms, so poll in
        # short slices until the deadline.
        while True:
            remaining = deadline - time.monotonic()
            if self.endpoint.poll(max(0.0, min(remaining, POLL_INTERVAL))):
                return True
            if time.monotonic() >= deadline:
                return False

    def _read_once(self, size: int) -> bytes:
        try:
            data = self.endpoint.read(size)
        except IoError as err:
            logger.warning("Reading child %s failed: %s", self.name, err)
            return b""
        if not data:
            self.eof = True
            logger.debug("Child %s reached EOF", self.name)
        return data

    def read(self, num_bytes: Optional[int] = None, timeout_ms: int = -1) -> bytes:
        if not self.usable:
            return b""
        if num_bytes is not None and num_bytes <= 0:
            return b""
        deadline = _deadline(timeout_ms)

        if num_bytes is None:
            if not self._wait_readable(deadline):
                return b""
            return self._read_once(CHUNK_SIZE)

        buf = bytearray()
        while len(buf) < num_bytes:
            if not self._wait_readable(deadline):
                break
            chunk = self._read_once(num_bytes - len(buf))
            if not chunk:
                break
            buf += chunk
        return bytes(buf)

    def read_all(self, timeout_ms: int = -1) -> bytes:
        deadline = _deadline(timeout_ms)
        chunks: List[bytes] = []
        while True:
            if deadline is None:
                remaining_ms = -1
            else:
                remaining_ms = int((deadline - time.monotonic()) * 1000)
                if remaining_ms <= 0:
                    break
            chunk = self.read(None, remaining_ms)
            if not chunk:
                break
            chunks.append(chunk)
        return b"".join(chunks)

    def has_data(self) -> bool:
        return self.usable and self.endpoint.bytes_available() > 0

    def close(self) -> None:
        if self.endpoint is not None:
            self.endpoint.close()


class ProcessHandle:
    """
    A running (or finished) child process and the parent's ends of its pipes.

    Create it with :func:`pysubpipe.spawn`. It owns every pipe and the OS
    process handle: call :meth:`close` (or use it as a context manager) to
    release them. Not thread-safe: serialize calls yourself.

    Reads never raise on EOF or timeout: they return fewer bytes (or
    ``b""``). Check :meth:`is_stdout_eof` to tell the two apart.
    """

    _process: Optional[NativeProcess] = None
    _stdin: Optional[PipeEndpoint] = None
    _stdout: Optional[_StreamReader] = None
    _stderr: Optional[_StreamReader] = None
    _exit_code: Optional[int] = None
    _closed = False

    def __init__(self, launched: Launched):
        self._process = launched.process
        self._stdin = launched.stdin
        self._stdout = _StreamReader("stdout", launched.stdout)
        self._stderr = _StreamReader("stderr", launched.stderr)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def __del__(self):
        if not self._closed:
            self.close()

    def __repr__(self):
        return "<ProcessHandle pid=%r exit_code=%r>" % (
            None if self._process is None else self._process.pid,
            self._exit_code,
        )

    @property
    def pid(self) -> Optional[int]:
        """
        OS process ID, or None once the child has been reaped.
        """
        if self._process is None or self._exit_code is not None:
            return None
        return self._process.pid

    @property
    def exit_code(self) -> Optional[int]:
        """
        Exit status, if the child has been observed to exit; otherwise None.
        """
        return self._exit_code

    def _record_exit(self, status: int) -> None:
        if self._exit_code is None:
            self._exit_code = status
            logger.debug("pid=%d exited with status %d", self._process.pid, status)

    # Lifecycle

    def is_running(self) -> bool:
        """
        Check, without blocking, whether the child is still running.

        The first call that sees the child gone reaps it and caches its exit
        status.
        """
        if self._process is None or self._exit_code is not None:
            return False
        try:
            status = self._process.poll()
        except OSError as err:
            # ECHILD: someone else reaped it. Its status is lost.
            logger.warning("Could not poll pid=%d: %s", self._process.pid, err)
            status = SIGNALED_EXIT_CODE
        if status is None:
            return True
        self._record_exit(status)
        return False

    def wait(self) -> int:
        """
        Block until the child exits; return its exit status.

        The status is the child's exit code (0-255 on POSIX), or
        :data:`pysubpipe.SIGNALED_EXIT_CODE` if it was killed.
        """
        if self._process is None:
            return SIGNALED_EXIT_CODE
        if self._exit_code is None:
            try:
                status = self._process.wait()
            except OSError as err:
                logger.warning("Could not wait for pid=%d: %s", self._process.pid, err)
                status = SIGNALED_EXIT_CODE
            self._record_exit(status)
        return self._exit_code

    def _kill(self) -> None:
        try:
            self._process.kill()
        except OSError as err:
            # It exited in the meantime; wait() collects it.
            logger.debug("Could not kill pid=%d: %s", self._process.pid, err)

    def terminate(self, graceful: bool = True, grace_period: float = GRACE_PERIOD) -> None:
        """
        Stop the child and reap it.

        :param graceful: Ask the child to exit first (``SIGTERM``) and give it
                         ``grace_period`` seconds before killing it. On
                         Windows the child is always killed immediately.
        :param grace_period: Seconds to wait after a graceful request.
        """
        if not self.is_running():
            return

        if graceful and self._process.supports_graceful:
            try:
                self._process.send_graceful()
            except OSError as err:
                logger.debug("Could not signal pid=%d: %s", self._process.pid, err)
            deadline = time.monotonic() + grace_period
            while time.monotonic() < deadline:
                if not self.is_running():
                    return
                time.sleep(LIVENESS_POLL_INTERVAL)
            logger.debug(
                "pid=%d still running after %.1fs; killing",
                self._process.pid,
                grace_period,
            )

        self._kill()
        self.wait()

    def close_stdin(self) -> None:
        """
        Close the child's stdin, so it reads EOF. Safe to call repeatedly.
        """
        if self._stdin is not None:
            self._stdin.close()
            self._stdin = None

    def close(self) -> None:
        """
        Kill the child if it is still running; release every pipe and handle.

        Safe to call repeatedly. Never raises.
        """
        if self._closed:
            return
        self._closed = True

        if self._process is not None:
            try:
                self.terminate(graceful=False)
            except OSError as err:
                logger.debug("Error while killing pid=%d: %s", self._process.pid, err)

        self.close_stdin()
        for reader in (self._stdout, self._stderr):
            if reader is not None:
                reader.close()
        if self._process is not None:
            self._process.release()

    # Writer

    def write(self, data: Union[bytes, bytearray, memoryview, str]) -> int:
        """
        Write all of ``data`` to the child's stdin, retrying partial writes.

        ``str`` is encoded as UTF-8.

        :return: Number of bytes written. Less than ``len(data)`` if the child
                 closed its stdin or a write failed; ``0`` if stdin was not
                 captured or is closed.
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        if self._stdin is None or self._stdin.closed:
            return 0
        view = memoryview(data).cast("B")
        total = 0
        while total < len(view):
            try:
                n = self._stdin.write(view[total:])
            except InterruptedError:
                continue
            except BlockingIOError:
                time.sleep(WRITE_BACKOFF)
                continue
            except IoError as err:
                logger.warning("Writing child stdin failed: %s", err)
                break
            if n == 0:
                logger.debug("Child closed its stdin after %d bytes", total)
                break
            total += n
        return total

    # Readers

    def read_stdout(self, num_bytes: Optional[int] = None, timeout_ms: int = -1) -> bytes:
        """
        Read from the child's stdout.

        :param num_bytes: None (default): return whatever one read yields, up
                          to :data:`CHUNK_SIZE` bytes. An int: keep reading
                          until exactly this many bytes arrive; return fewer
                          only on EOF or timeout.
        :param timeout_ms: ``-1`` (default): wait indefinitely. ``0``: return
                           only what is available right now. Positive: total
                           milliseconds to wait, across all reads.
        """
        return self._stdout.read(num_bytes, timeout_ms)

    def read_stderr(self, num_bytes: Optional[int] = None, timeout_ms: int = -1) -> bytes:
        """
        Read from the child's stderr. See :meth:`read_stdout`.
        """
        return self._stderr.read(num_bytes, timeout_ms)

    def read_all_stdout(self, timeout_ms: int = -1) -> bytes:
        """
        Read stdout until EOF, or until a read returns nothing within what is
        left of ``timeout_ms``.
        """
        return self._stdout.read_all(timeout_ms)

    def read_all_stderr(self, timeout_ms: int = -1) -> bytes:
        return self._stderr.read_all(timeout_ms)

    def has_data_stdout(self) -> bool:
        """
        True if stdout has unread bytes right now. Consumes nothing.
        """
        return self._stdout.has_data()

    def has_data_stderr(self) -> bool:
        return self._stderr.has_data()

    def is_stdout_eof(self) -> bool:
        """
        True once a read has found stdout closed. Stays True.
        """
        return self._stdout.eof

    def is_stderr_eof(self) -> bool:
        return self._stderr.eof


def spawn(
    program: Union[str, os.PathLike],
    args: Sequence[str] = (),
    options: SpawnOptions = SpawnOptions(),
) -> ProcessHandle:
    """
    Start ``program`` with ``args``; return a handle to the running child.

    ``program`` is looked up on ``PATH`` unless it contains a directory. It is
    also passed to the child as ``argv[0]``.

    :param program: Program name or path.
    :param args: Arguments (``argv[1:]``).
    :param options: Streams to capture, environment and working directory.
    :raises pysubpipe.EncodingError: if an argument or environment entry
                                     contains a NUL character.
    :raises pysubpipe.PipeCreationError: if a pipe could not be created.
    :raises pysubpipe.SpawnError: if the OS could not create the process or
                                  enter ``options.cwd``.
    :rtype: pysubpipe.ProcessHandle
    """
    if isinstance(args, (str, bytes)):
        raise TypeError("args must be a sequence of str, not %s" % type(args).__name__)
    return ProcessHandle(_platform.launch(os.fspath(program), list(args), options))

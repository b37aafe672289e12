"""
What every platform backend provides.

A backend module exposes ``launch(program, args, options) -> Launched``,
built from the two classes below. :mod:`pysubpipe.process` drives them and
never sees a raw file descriptor or HANDLE.
"""
import abc
from typing import NamedTuple, Optional

SIGNALED_EXIT_CODE = -1
"""
Exit status reported for a child that did not exit on its own: killed by a
signal on POSIX, or by :meth:`NativeProcess.kill` on Windows.
"""


class PipeEndpoint(abc.ABC):
    """
    The parent's end of one pipe.
    """

    @property
    @abc.abstractmethod
    def closed(self) -> bool:
        ...

    @abc.abstractmethod
    def read(self, size: int) -> bytes:
        """
        Block until at least one byte is available, then return up to
        ``size`` bytes.

        Return ``b""`` on end-of-file.

        :raises pysubpipe.IoError: on any other failure.
        """

    @abc.abstractmethod
    def poll(self, timeout: float) -> bool:
        """
        Wait up to ``timeout`` seconds until :meth:`read` would not block.

        Return True if data *or end-of-file* is ready. Consumes nothing.
        """

    @abc.abstractmethod
    def bytes_available(self) -> int:
        """
        Count buffered bytes without consuming them. ``0`` at end-of-file.
        """

    @abc.abstractmethod
    def write(self, data: memoryview) -> int:
        """
        Write some prefix of ``data`` with a single OS call.

        Return ``0`` if the reader has closed its end.

        :raises InterruptedError: if a signal interrupted the call.
        :raises BlockingIOError: if the pipe is full and non-blocking.
        :raises pysubpipe.IoError: on any other failure.
        """

    @abc.abstractmethod
    def close(self) -> None:
        """
        Release the OS resource. Calling twice is a no-op.
        """


class NativeProcess(abc.ABC):
    """
    The OS's handle on the child process.

    Exit statuses are plain ints: the exit code, or
    :data:`pysubpipe.SIGNALED_EXIT_CODE`.
    """

    pid: int

    supports_graceful: bool = False
    """
    True when :meth:`send_graceful` asks the child to exit (rather than doing
    nothing).
    """

    @abc.abstractmethod
    def poll(self) -> Optional[int]:
        """
        Reap the child if it has exited; return its status, or None.
        """

    @abc.abstractmethod
    def wait(self) -> int:
        """
        Block until the child exits; reap it and return its status.
        """

    def send_graceful(self) -> None:
        pass

    @abc.abstractmethod
    def kill(self) -> None:
        """
        Force the child to exit. Does not reap.

        :raises OSError: if the OS refuses (for instance, it already exited).
        """

    @abc.abstractmethod
    def release(self) -> None:
        """
        Release the OS handle, if any. Calling twice is a no-op.
        """


class Launched(NamedTuple):
    process: NativeProcess
    stdin: Optional[PipeEndpoint]
    stdout: Optional[PipeEndpoint]
    stderr: Optional[PipeEndpoint]

"""
POSIX backend: file descriptors, ``os.pipe()``, ``fork()`` and ``exec()``.
"""
import array
import fcntl
import logging
import os
import selectors
import shutil
import signal
import termios
from contextlib import ExitStack
from typing import Dict, List, Optional, Sequence, Tuple

from ._backend import SIGNALED_EXIT_CODE, Launched, NativeProcess, PipeEndpoint
from .encoding import build_argv, build_environ
from .errors import IoError, PipeCreationError, SpawnError
from .options import SpawnOptions

logger = logging.getLogger(__name__)

EXEC_FAILED_EXIT_CODE = 127


def _close_fd(fd: int) -> None:
    try:
        os.close(fd)
    except OSError:
        pass


class FdEndpoint(PipeEndpoint):
    def __init__(self, fd: int):
        self._fd = fd
        self._selector: Optional[selectors.BaseSelector] = None

    @property
    def closed(self) -> bool:
        return self._fd < 0

    def fileno(self) -> int:
        return self._fd

    def read(self, size: int) -> bytes:
        try:
            return os.read(self._fd, size)
        except OSError as err:
            raise IoError(err.errno, "read() failed: %s" % err.strerror) from err

    def poll(self, timeout: float) -> bool:
        if self._selector is None:
            self._selector = selectors.DefaultSelector()
            self._selector.register(self._fd, selectors.EVENT_READ)
        # A hung-up pipe counts as readable: the next read() returns b"".
        return bool(self._selector.select(timeout))

    def bytes_available(self) -> int:
        buf = array.array("i", [0])
        try:
            fcntl.ioctl(self._fd, termios.FIONREAD, buf, True)
        except OSError:
            return 0
        return buf[0]

    def write(self, data: memoryview) -> int:
        try:
            return os.write(self._fd, data)
        except BrokenPipeError:
            return 0
        except (InterruptedError, BlockingIOError):
            raise
        except OSError as err:
            raise IoError(err.errno, "write() failed: %s" % err.strerror) from err

    def close(self) -> None:
        if self._selector is not None:
            self._selector.close()
            self._selector = None
        if self._fd >= 0:
            _close_fd(self._fd)
            self._fd = -1


def _decode_wait_status(status: int) -> int:
    if os.WIFEXITED(status):
        return os.WEXITSTATUS(status)
    return SIGNALED_EXIT_CODE


class ForkedProcess(NativeProcess):
    supports_graceful = True

    def __init__(self, pid: int):
        self.pid = pid

    def poll(self) -> Optional[int]:
        pid, status = os.waitpid(self.pid, os.WNOHANG)
        if pid == 0:
            return None
        return _decode_wait_status(status)

    def wait(self) -> int:
        _, status = os.waitpid(self.pid, 0)
        return _decode_wait_status(status)

    def send_graceful(self) -> None:
        os.kill(self.pid, signal.SIGTERM)

    def kill(self) -> None:
        os.kill(self.pid, signal.SIGKILL)

    def release(self) -> None:
        pass  # a pid is not a resource


def _create_pipe(
    name: str, child_reads: bool, parent_ends: ExitStack, child_ends: ExitStack
) -> Tuple[FdEndpoint, int]:
    """
    Create a pipe; return the parent's endpoint and the child's raw fd.

    Both ends are scheduled for closing: the parent's end on ``parent_ends``
    and the child's end on ``child_ends``.
    """
    try:
        read_fd, write_fd = os.pipe()  # both non-inheritable
    except OSError as err:
        raise PipeCreationError(
            err.errno, "Could not create %s pipe: %s" % (name, err.strerror)
        ) from err
    if child_reads:
        parent_fd, child_fd = write_fd, read_fd
    else:
        parent_fd, child_fd = read_fd, write_fd
    endpoint = FdEndpoint(parent_fd)
    parent_ends.callback(endpoint.close)
    child_ends.callback(_close_fd, child_fd)
    try:
        os.set_inheritable(child_fd, True)
    except OSError as err:
        raise PipeCreationError(
            err.errno, "Could not share %s pipe: %s" % (name, err.strerror)
        ) from err
    return endpoint, child_fd


def _resolve_executable(program: str, environ: Optional[Dict[str, str]]) -> str:
    """
    Find the file ``execve()`` should run.

    ``execvp()`` searches ``PATH`` itself, but ``execve()`` (needed to pass a
    custom environment) does not. Search the *parent's* ``PATH``, as it is
    right now.
    """
    if environ is None:
        return program
    return shutil.which(program) or program


def _exec_child(
    argv: List[str],
    executable: str,
    environ: Optional[Dict[str, str]],
    cwd: Optional[str],
    std_fds: Sequence[Optional[int]],
    combine_stdout_stderr: bool,
    pipe_fds: Sequence[int],
    status_fd: int,
) -> None:
    """
    Run in the forked child: set up stdio, then replace the process image.

    Never returns.
    """
    try:
        # Python ignores SIGPIPE; ignored signals survive exec().
        for name in ("SIGPIPE", "SIGXFSZ"):
            sig = getattr(signal, name, None)
            if sig is not None:
                signal.signal(sig, signal.SIG_DFL)

        if cwd is not None:
            try:
                os.chdir(cwd)
            except OSError as err:
                os.write(status_fd, str(err.errno).encode("ascii"))
                os._exit(EXEC_FAILED_EXIT_CODE)

        for target, fd in enumerate(std_fds):
            if fd is not None:
                os.dup2(fd, target)
        if std_fds[2] is None and combine_stdout_stderr:
            os.dup2(1, 2)
        for fd in pipe_fds:
            if fd > 2:
                os.close(fd)

        if environ is None:
            os.execvp(argv[0], argv)
        else:
            os.execve(executable, argv, environ)
    except Exception as err:
        try:
            os.write(2, ("Exec failed: %s\n" % err).encode("utf-8", "replace"))
        except OSError:
            pass
    finally:
        os._exit(EXEC_FAILED_EXIT_CODE)


def _read_until_eof(fd: int) -> bytes:
    chunks = []
    while True:
        chunk = os.read(fd, 64)
        if not chunk:
            return b"".join(chunks)
        chunks.append(chunk)


def _fork_exec(
    argv: List[str],
    executable: str,
    environ: Optional[Dict[str, str]],
    cwd: Optional[str],
    std_fds: Sequence[Optional[int]],
    combine_stdout_stderr: bool,
) -> int:
    # The child reports a failed chdir() here. exec() closes the write end,
    # so an empty read means the child got as far as exec().
    try:
        status_read, status_write = os.pipe()
    except OSError as err:
        raise SpawnError(err.errno, "pipe() failed: %s" % err.strerror) from err
    try:
        pipe_fds = [fd for fd in std_fds if fd is not None]
        try:
            pid = os.fork()
        except OSError as err:
            _close_fd(status_read)
            raise SpawnError(err.errno, "fork() failed: %s" % err.strerror) from err

        if pid == 0:
            _exec_child(
                argv,
                executable,
                environ,
                cwd,
                std_fds,
                combine_stdout_stderr,
                pipe_fds,
                status_write,
            )
    finally:
        _close_fd(status_write)  # parent only: the child never gets here

    try:
        report = _read_until_eof(status_read)
    finally:
        _close_fd(status_read)

    if report:
        os.waitpid(pid, 0)
        code = int(report)
        raise SpawnError(
            code, "Could not change directory to %r: %s" % (cwd, os.strerror(code))
        )
    return pid


def launch(program: str, args: Sequence[str], options: SpawnOptions) -> Launched:
    argv = build_argv(program, args)
    environ = build_environ(options.env) if options.env else None
    executable = _resolve_executable(argv[0], environ)
    cwd = os.fspath(options.cwd) if options.cwd is not None else None

    with ExitStack() as parent_ends, ExitStack() as child_ends:
        stdin = stdout = stderr = None
        std_fds: List[Optional[int]] = [None, None, None]
        if options.use_stdin:
            stdin, std_fds[0] = _create_pipe("stdin", True, parent_ends, child_ends)
        if options.use_stdout:
            stdout, std_fds[1] = _create_pipe("stdout", False, parent_ends, child_ends)
        if options.creates_stderr_pipe:
            stderr, std_fds[2] = _create_pipe("stderr", False, parent_ends, child_ends)

        pid = _fork_exec(
            argv, executable, environ, cwd, std_fds, options.combine_stdout_stderr
        )
        logger.debug("Spawned pid=%d argv=%r cwd=%r", pid, argv, cwd)

        # Success: keep the parent's ends. child_ends still closes ours.
        parent_ends.pop_all()

    return Launched(ForkedProcess(pid), stdin, stdout, stderr)

class PysubpipeError(Exception):
    """
    Base class for every error pysubpipe raises.
    """


class EncodingError(PysubpipeError, ValueError):
    """
    An argument or environment entry cannot be passed to a child process.

    (Embedded NUL characters, or ``=`` inside an environment variable name.)
    """


class SpawnError(PysubpipeError, OSError):
    """
    The child process could not be created.

    Construct it like :class:`OSError`: ``SpawnError(errno, message)``. The
    native error code is in ``.errno`` (``GetLastError()`` on Windows).
    """


class PipeCreationError(SpawnError):
    """
    An inter-process pipe could not be created.
    """


class IoError(PysubpipeError, OSError):
    """
    A read or write on a pipe failed for a reason other than EOF or timeout.
    """


class FrameError(PysubpipeError, ValueError):
    """
    A length-prefixed frame does not follow the ``length, newline, payload``
    layout.
    """

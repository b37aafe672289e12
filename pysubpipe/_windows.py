"""
Windows backend: anonymous pipes and ``CreateProcessW()``, through ctypes.
"""
import ctypes
import logging
import os
import time
from contextlib import ExitStack
from ctypes import wintypes
from typing import Optional, Sequence, Tuple

from ._backend import SIGNALED_EXIT_CODE, Launched, NativeProcess, PipeEndpoint
from .encoding import build_command_line, build_environment_block
from .errors import IoError, PipeCreationError, SpawnError
from .options import SpawnOptions

logger = logging.getLogger(__name__)

kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)

HANDLE_FLAG_INHERIT = 0x00000001
STARTF_USESTDHANDLES = 0x00000100
CREATE_UNICODE_ENVIRONMENT = 0x00000400
DUPLICATE_SAME_ACCESS = 0x00000002
STD_INPUT_HANDLE = wintypes.DWORD(-10).value
STD_OUTPUT_HANDLE = wintypes.DWORD(-11).value
STD_ERROR_HANDLE = wintypes.DWORD(-12).value
INFINITE = 0xFFFFFFFF
WAIT_OBJECT_0 = 0x00000000
WAIT_TIMEOUT = 0x00000102
ERROR_BROKEN_PIPE = 109
ERROR_NO_DATA = 232
INVALID_HANDLE_VALUE = wintypes.HANDLE(-1).value


class SECURITY_ATTRIBUTES(ctypes.Structure):
    _fields_ = [
        ("nLength", wintypes.DWORD),
        ("lpSecurityDescriptor", wintypes.LPVOID),
        ("bInheritHandle", wintypes.BOOL),
    ]


class STARTUPINFOW(ctypes.Structure):
    _fields_ = [
        ("cb", wintypes.DWORD),
        ("lpReserved", wintypes.LPWSTR),
        ("lpDesktop", wintypes.LPWSTR),
        ("lpTitle", wintypes.LPWSTR),
        ("dwX", wintypes.DWORD),
        ("dwY", wintypes.DWORD),
        ("dwXSize", wintypes.DWORD),
        ("dwYSize", wintypes.DWORD),
        ("dwXCountChars", wintypes.DWORD),
        ("dwYCountChars", wintypes.DWORD),
        ("dwFillAttribute", wintypes.DWORD),
        ("dwFlags", wintypes.DWORD),
        ("wShowWindow", wintypes.WORD),
        ("cbReserved2", wintypes.WORD),
        ("lpReserved2", wintypes.LPBYTE),
        ("hStdInput", wintypes.HANDLE),
        ("hStdOutput", wintypes.HANDLE),
        ("hStdError", wintypes.HANDLE),
    ]


class PROCESS_INFORMATION(ctypes.Structure):
    _fields_ = [
        ("hProcess", wintypes.HANDLE),
        ("hThread", wintypes.HANDLE),
        ("dwProcessId", wintypes.DWORD),
        ("dwThreadId", wintypes.DWORD),
    ]


def _prototype(name, restype, *argtypes):
    fn = getattr(kernel32, name)
    fn.restype = restype
    fn.argtypes = argtypes
    return fn


_PHANDLE = ctypes.POINTER(wintypes.HANDLE)

CreatePipe = _prototype(
    "CreatePipe",
    wintypes.BOOL,
    _PHANDLE,
    _PHANDLE,
    ctypes.POINTER(SECURITY_ATTRIBUTES),
    wintypes.DWORD,
)
SetHandleInformation = _prototype(
    "SetHandleInformation", wintypes.BOOL, wintypes.HANDLE, wintypes.DWORD, wintypes.DWORD
)
GetStdHandle = _prototype("GetStdHandle", wintypes.HANDLE, wintypes.DWORD)
GetCurrentProcess = _prototype("GetCurrentProcess", wintypes.HANDLE)
DuplicateHandle = _prototype(
    "DuplicateHandle",
    wintypes.BOOL,
    wintypes.HANDLE,
    wintypes.HANDLE,
    wintypes.HANDLE,
    _PHANDLE,
    wintypes.DWORD,
    wintypes.BOOL,
    wintypes.DWORD,
)
CreateProcessW = _prototype(
    "CreateProcessW",
    wintypes.BOOL,
    wintypes.LPCWSTR,
    wintypes.LPWSTR,
    wintypes.LPVOID,
    wintypes.LPVOID,
    wintypes.BOOL,
    wintypes.DWORD,
    wintypes.LPVOID,
    wintypes.LPCWSTR,
    ctypes.POINTER(STARTUPINFOW),
    ctypes.POINTER(PROCESS_INFORMATION),
)
PeekNamedPipe = _prototype(
    "PeekNamedPipe",
    wintypes.BOOL,
    wintypes.HANDLE,
    wintypes.LPVOID,
    wintypes.DWORD,
    wintypes.LPDWORD,
    wintypes.LPDWORD,
    wintypes.LPDWORD,
)
ReadFile = _prototype(
    "ReadFile",
    wintypes.BOOL,
    wintypes.HANDLE,
    wintypes.LPVOID,
    wintypes.DWORD,
    wintypes.LPDWORD,
    wintypes.LPVOID,
)
WriteFile = _prototype(
    "WriteFile",
    wintypes.BOOL,
    wintypes.HANDLE,
    wintypes.LPCVOID,
    wintypes.DWORD,
    wintypes.LPDWORD,
    wintypes.LPVOID,
)
CloseHandle = _prototype("CloseHandle", wintypes.BOOL, wintypes.HANDLE)
WaitForSingleObject = _prototype(
    "WaitForSingleObject", wintypes.DWORD, wintypes.HANDLE, wintypes.DWORD
)
GetExitCodeProcess = _prototype(
    "GetExitCodeProcess", wintypes.BOOL, wintypes.HANDLE, wintypes.LPDWORD
)
TerminateProcess = _prototype(
    "TerminateProcess", wintypes.BOOL, wintypes.HANDLE, wintypes.UINT
)


def _close_handle(handle: int) -> None:
    if handle and handle != INVALID_HANDLE_VALUE:
        CloseHandle(handle)


def _io_error(what: str) -> IoError:
    code = ctypes.get_last_error()
    return IoError(code, "%s failed: %s" % (what, ctypes.FormatError(code)))


class HandleEndpoint(PipeEndpoint):
    def __init__(self, handle: int):
        self._handle: Optional[int] = handle

    @property
    def closed(self) -> bool:
        return self._handle is None

    def read(self, size: int) -> bytes:
        buf = ctypes.create_string_buffer(size)
        n_read = wintypes.DWORD(0)
        if not ReadFile(self._handle, buf, size, ctypes.byref(n_read), None):
            if ctypes.get_last_error() == ERROR_BROKEN_PIPE:
                return b""  # the child closed its end
            raise _io_error("ReadFile()")
        return buf.raw[: n_read.value]

    def _peek(self) -> Optional[int]:
        """
        Return the number of buffered bytes, or None if the pipe is broken.
        """
        n_available = wintypes.DWORD(0)
        if not PeekNamedPipe(
            self._handle, None, 0, None, ctypes.byref(n_available), None
        ):
            if ctypes.get_last_error() == ERROR_BROKEN_PIPE:
                return None
            raise _io_error("PeekNamedPipe()")
        return n_available.value

    def poll(self, timeout: float) -> bool:
        # WaitForSingleObject() does not work on anonymous pipes. Peek, sleep,
        # and peek again; the caller keeps ``timeout`` short.
        n_available = self._peek()
        if n_available is None or n_available > 0:
            return True
        if timeout <= 0:
            return False
        time.sleep(timeout)
        n_available = self._peek()
        return n_available is None or n_available > 0

    def bytes_available(self) -> int:
        try:
            return self._peek() or 0
        except IoError:
            return 0

    def write(self, data: memoryview) -> int:
        n_written = wintypes.DWORD(0)
        if not WriteFile(
            self._handle, bytes(data), len(data), ctypes.byref(n_written), None
        ):
            if ctypes.get_last_error() in (ERROR_BROKEN_PIPE, ERROR_NO_DATA):
                return 0
            raise _io_error("WriteFile()")
        return n_written.value

    def close(self) -> None:
        if self._handle is not None:
            _close_handle(self._handle)
            self._handle = None


class Win32Process(NativeProcess):
    """
    A process HANDLE.

    Windows has no cooperative "please exit" signal for console children, so
    ``supports_graceful`` is False and termination is always forced.
    """

    def __init__(self, handle: int, pid: int):
        self._handle: Optional[int] = handle
        self.pid = pid
        self._killed = False

    def _exit_status(self) -> int:
        code = wintypes.DWORD(0)
        if not GetExitCodeProcess(self._handle, ctypes.byref(code)):
            raise ctypes.WinError(ctypes.get_last_error())
        if self._killed:
            return SIGNALED_EXIT_CODE
        return code.value

    def _wait(self, milliseconds: int) -> Optional[int]:
        result = WaitForSingleObject(self._handle, milliseconds)
        if result == WAIT_TIMEOUT:
            return None
        if result != WAIT_OBJECT_0:
            raise ctypes.WinError(ctypes.get_last_error())
        return self._exit_status()

    def poll(self) -> Optional[int]:
        return self._wait(0)

    def wait(self) -> int:
        return self._wait(INFINITE)

    def kill(self) -> None:
        if not TerminateProcess(self._handle, 1):
            raise ctypes.WinError(ctypes.get_last_error())
        self._killed = True

    def release(self) -> None:
        if self._handle is not None:
            _close_handle(self._handle)
            self._handle = None


def _create_pipe(
    name: str, child_reads: bool, parent_ends: ExitStack, child_ends: ExitStack
) -> Tuple[HandleEndpoint, int]:
    """
    Create an inheritable pipe, then make the parent's end non-inheritable.

    Return the parent's endpoint and the child's raw HANDLE, each scheduled
    for closing on its stack.
    """
    attributes = SECURITY_ATTRIBUTES(ctypes.sizeof(SECURITY_ATTRIBUTES), None, True)
    read_handle = wintypes.HANDLE()
    write_handle = wintypes.HANDLE()
    if not CreatePipe(
        ctypes.byref(read_handle),
        ctypes.byref(write_handle),
        ctypes.byref(attributes),
        0,
    ):
        code = ctypes.get_last_error()
        raise PipeCreationError(
            code, "Could not create %s pipe: %s" % (name, ctypes.FormatError(code))
        )
    if child_reads:
        parent_handle, child_handle = write_handle.value, read_handle.value
    else:
        parent_handle, child_handle = read_handle.value, write_handle.value
    endpoint = HandleEndpoint(parent_handle)
    parent_ends.callback(endpoint.close)
    child_ends.callback(_close_handle, child_handle)
    if not SetHandleInformation(parent_handle, HANDLE_FLAG_INHERIT, 0):
        code = ctypes.get_last_error()
        raise PipeCreationError(
            code, "Could not protect %s pipe: %s" % (name, ctypes.FormatError(code))
        )
    return endpoint, child_handle


def _inherit_std_handle(which: int, child_ends: ExitStack) -> Optional[int]:
    """
    Return an inheritable duplicate of one of our own standard handles.

    Return the handle as-is (possibly NULL) if it cannot be duplicated: we
    may have no console at all.
    """
    handle = GetStdHandle(which)
    if not handle or handle == INVALID_HANDLE_VALUE:
        return handle
    process = GetCurrentProcess()
    duplicate = wintypes.HANDLE()
    if not DuplicateHandle(
        process,
        handle,
        process,
        ctypes.byref(duplicate),
        0,
        True,
        DUPLICATE_SAME_ACCESS,
    ):
        return handle
    child_ends.callback(_close_handle, duplicate.value)
    return duplicate.value


def _wide_buffer(s: str):
    # create_unicode_buffer() would stop at the first NUL in a block
    return (ctypes.c_wchar * len(s))(*s)


def launch(program: str, args: Sequence[str], options: SpawnOptions) -> Launched:
    # CreateProcessW() searches the parent's PATH itself, even when we pass a
    # custom environment, so the program name needs no resolving here.
    command_line = ctypes.create_unicode_buffer(build_command_line(program, args))
    if options.env:
        environment = _wide_buffer(build_environment_block(options.env))
        creation_flags = CREATE_UNICODE_ENVIRONMENT
    else:
        environment = None
        creation_flags = 0
    cwd = os.fspath(options.cwd) if options.cwd is not None else None

    with ExitStack() as parent_ends, ExitStack() as child_ends:
        stdin = stdout = stderr = None
        startup_info = STARTUPINFOW()
        startup_info.cb = ctypes.sizeof(STARTUPINFOW)
        startup_info.dwFlags = STARTF_USESTDHANDLES

        if options.use_stdin:
            stdin, startup_info.hStdInput = _create_pipe(
                "stdin", True, parent_ends, child_ends
            )
        else:
            startup_info.hStdInput = _inherit_std_handle(STD_INPUT_HANDLE, child_ends)

        if options.use_stdout:
            stdout, startup_info.hStdOutput = _create_pipe(
                "stdout", False, parent_ends, child_ends
            )
        else:
            startup_info.hStdOutput = _inherit_std_handle(
                STD_OUTPUT_HANDLE, child_ends
            )

        if options.creates_stderr_pipe:
            stderr, startup_info.hStdError = _create_pipe(
                "stderr", False, parent_ends, child_ends
            )
        elif options.combine_stdout_stderr:
            startup_info.hStdError = startup_info.hStdOutput
        else:
            startup_info.hStdError = _inherit_std_handle(STD_ERROR_HANDLE, child_ends)

        process_info = PROCESS_INFORMATION()
        if not CreateProcessW(
            None,
            command_line,
            None,
            None,
            True,
            creation_flags,
            environment,
            cwd,
            ctypes.byref(startup_info),
            ctypes.byref(process_info),
        ):
            code = ctypes.get_last_error()
            raise SpawnError(
                code,
                "Could not start %r: %s" % (program, ctypes.FormatError(code)),
            )
        _close_handle(process_info.hThread)
        logger.debug(
            "Spawned pid=%d command_line=%r cwd=%r",
            process_info.dwProcessId,
            command_line.value,
            cwd,
        )

        # Success: keep the parent's ends. child_ends still closes ours.
        parent_ends.pop_all()

    return Launched(
        Win32Process(process_info.hProcess, process_info.dwProcessId),
        stdin,
        stdout,
        stderr,
    )

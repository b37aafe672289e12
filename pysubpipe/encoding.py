"""
Turn a program name, arguments and environment into what the OS expects.

POSIX takes an argument vector and a ``key=value`` environment list, so
:func:`build_argv` and :func:`build_environ` only validate. Windows takes one
flat command-line string and one NUL-separated environment block, built by
:func:`build_command_line` and :func:`build_environment_block`.
"""
import os
from typing import Dict, Iterable, List, Mapping

from .errors import EncodingError


def _check_no_nul(value: str, what: str) -> None:
    if "\0" in value:
        raise EncodingError("%s %r contains a NUL character" % (what, value))


def quote_argument(arg: str) -> str:
    """
    Quote one argument so the Microsoft C runtime parses it back verbatim.

    An argument is quoted if it is empty or holds a space, tab or double
    quote. A run of backslashes is doubled when it precedes a literal quote
    (which is then escaped) or the closing quote; elsewhere backslashes are
    literal.
    """
    _check_no_nul(arg, "Argument")
    needs_quotes = arg == "" or any(c in arg for c in ' \t"')
    if not needs_quotes:
        return arg

    parts = ['"']
    n_backslashes = 0
    for c in arg:
        if c == "\\":
            n_backslashes += 1
        elif c == '"':
            parts.append("\\" * (n_backslashes * 2 + 1))
            parts.append('"')
            n_backslashes = 0
        else:
            parts.append("\\" * n_backslashes)
            parts.append(c)
            n_backslashes = 0
    parts.append("\\" * (n_backslashes * 2))
    parts.append('"')
    return "".join(parts)


def build_command_line(program: str, args: Iterable[str]) -> str:
    """
    Build a ``CreateProcess`` command line: quoted program, then arguments,
    separated by single spaces.

    :raises pysubpipe.EncodingError: if any part contains a NUL character.
    """
    return " ".join(quote_argument(s) for s in [os.fspath(program), *args])


def build_argv(program: str, args: Iterable[str]) -> List[str]:
    """
    Build an ``execv``-style argument vector, with ``program`` as ``argv[0]``.

    :raises pysubpipe.EncodingError: if any part contains a NUL character.
    """
    argv = [os.fspath(program), *args]
    for s in argv:
        _check_no_nul(s, "Argument")
    return argv


def build_environ(env: Mapping[str, str]) -> Dict[str, str]:
    """
    Validate ``env`` and copy it, dropping entries with an empty name.

    :raises pysubpipe.EncodingError: on a NUL character anywhere, or on ``=``
                                     in a variable name.
    """
    ret = {}
    for key, value in env.items():
        if not key:
            continue
        _check_no_nul(key, "Environment variable name")
        _check_no_nul(value, "Environment variable value")
        if "=" in key:
            raise EncodingError("Environment variable name %r contains '='" % key)
        ret[key] = value
    return ret


def build_environment_block(env: Mapping[str, str]) -> str:
    """
    Build a Windows environment block: ``key=value\\0`` per variable, then a
    final ``\\0``.

    :raises pysubpipe.EncodingError: see :func:`build_environ`.
    """
    environ = build_environ(env)
    if not environ:
        # CreateProcess needs the double NUL even for an empty block
        return "\0\0"
    return "".join("%s=%s\0" % item for item in environ.items()) + "\0"

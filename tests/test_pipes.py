"""Pipe creation failures leave nothing behind."""

import errno
import os
import sys

import pytest

import pysubpipe

from .helpers import IS_WINDOWS

pytestmark = pytest.mark.skipif(IS_WINDOWS, reason="os.pipe() backend only")


@pytest.fixture
def failing_second_pipe(monkeypatch):
    real_pipe = os.pipe
    created = []

    def pipe():
        if created:
            raise OSError(errno.EMFILE, os.strerror(errno.EMFILE))
        fds = real_pipe()
        created.append(fds)
        return fds

    monkeypatch.setattr(os, "pipe", pipe)
    return created


def _is_open(fd: int) -> bool:
    try:
        os.fstat(fd)
    except OSError:
        return False
    return True


class TestPipeCreation:
    def test_error_carries_errno(self, failing_second_pipe):
        with pytest.raises(pysubpipe.PipeCreationError) as excinfo:
            pysubpipe.spawn(
                sys.executable,
                ["-c", "pass"],
                pysubpipe.SpawnOptions(use_stdin=True, use_stdout=True),
            )
        assert isinstance(excinfo.value, pysubpipe.SpawnError)
        assert excinfo.value.errno == errno.EMFILE
        assert "stdout" in str(excinfo.value)

    def test_earlier_pipes_are_closed(self, failing_second_pipe):
        with pytest.raises(pysubpipe.PipeCreationError):
            pysubpipe.spawn(
                sys.executable,
                ["-c", "pass"],
                pysubpipe.SpawnOptions(use_stdin=True, use_stdout=True, use_stderr=True),
            )
        [(read_fd, write_fd)] = failing_second_pipe
        assert not _is_open(read_fd)
        assert not _is_open(write_fd)

    def test_no_pipes_requested(self, failing_second_pipe):
        # The status pipe is the only one: spawning still works.
        with pysubpipe.spawn(sys.executable, ["-c", "pass"]) as child:
            assert child.wait() == 0

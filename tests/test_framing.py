"""Length-prefixed frames over the child's stdout."""

import sys
import time

import pytest

import pysubpipe
from pysubpipe import FrameError, encode_frame, read_frame

from .helpers import FIXTURES


def _frames(handle):
    frames = []
    while True:
        frame = read_frame(handle, timeout_ms=10000)
        if frame is None:
            return frames
        frames.append(frame)


class TestEncodeFrame:
    def test_layout(self):
        assert encode_frame(b"abc") == b"\x03\x00\x00\x00\nabc"

    def test_empty(self):
        assert encode_frame(b"") == b"\x00\x00\x00\x00\n"


class TestReadFrame:
    def test_frames_from_child(self, spawn):
        child = spawn(sys.executable, [str(FIXTURES / "frame_writer.py")], use_stdout=True)
        assert _frames(child) == [
            b"Hello",
            b"World!",
            b"split",
            b"",
            bytes(range(256)) * 64,
        ]
        assert child.is_stdout_eof()
        assert child.wait() == 0

    def test_matches_manual_exact_reads(self, spawn):
        child = spawn(sys.executable, [str(FIXTURES / "frame_writer.py")], use_stdout=True)
        assert child.read_stdout(4) == b"\x05\x00\x00\x00"
        assert child.read_stdout(1) == b"\n"
        assert child.read_stdout(5) == b"Hello"
        assert read_frame(child) == b"World!"

    def test_bad_separator(self, spawn_python):
        child = spawn_python(
            "import sys; sys.stdout.buffer.write(b'\\x01\\x00\\x00\\x00Xa')",
            use_stdout=True,
        )
        with pytest.raises(FrameError):
            read_frame(child)

    def test_frame_error_is_a_value_error(self):
        assert issubclass(FrameError, ValueError)
        assert issubclass(FrameError, pysubpipe.PysubpipeError)

    def test_eof_before_frame(self, spawn_python):
        child = spawn_python("pass", use_stdout=True)
        assert read_frame(child) is None

    def test_truncated_payload(self, spawn_python):
        child = spawn_python(
            "import sys; sys.stdout.buffer.write(b'\\x0a\\x00\\x00\\x00\\nabc')",
            use_stdout=True,
        )
        assert read_frame(child) is None
        assert child.is_stdout_eof()

    def test_timeout(self, spawn_python):
        child = spawn_python(
            "import sys, time\n"
            "sys.stdout.buffer.write(b'\\x05\\x00\\x00\\x00\\n'); sys.stdout.flush()\n"
            "time.sleep(60)\n",
            use_stdout=True,
        )
        start = time.monotonic()
        assert read_frame(child, timeout_ms=300) is None
        assert time.monotonic() - start < 2
        assert not child.is_stdout_eof()

"""Writes to the child's stdin."""

from .helpers import ECHO_STDIN, IS_WINDOWS


class TestWrite:
    def test_round_trip(self, spawn_python):
        child = spawn_python(ECHO_STDIN, use_stdin=True, use_stdout=True)
        assert child.write(b"ping") == 4
        child.close_stdin()
        assert child.read_all_stdout() == b"ping"
        assert child.wait() == 0

    def test_large_payload_arrives_intact(self, spawn_python):
        payload = bytes(range(256)) * 1000
        child = spawn_python(ECHO_STDIN, use_stdin=True, use_stdout=True)
        assert child.write(payload) == len(payload)
        child.close_stdin()
        assert child.read_all_stdout() == payload
        assert child.wait() == 0

    def test_str_is_utf8(self, spawn_python):
        child = spawn_python(ECHO_STDIN, use_stdin=True, use_stdout=True)
        assert child.write("héllo") == len("héllo".encode("utf-8"))
        child.close_stdin()
        assert child.read_all_stdout() == "héllo".encode("utf-8")

    def test_bytearray_and_memoryview(self, spawn_python):
        child = spawn_python(ECHO_STDIN, use_stdin=True, use_stdout=True)
        assert child.write(bytearray(b"ab")) == 2
        assert child.write(memoryview(b"cd")) == 2
        child.close_stdin()
        assert child.read_all_stdout() == b"abcd"

    def test_empty_write(self, spawn_python):
        child = spawn_python(ECHO_STDIN, use_stdin=True, use_stdout=True)
        assert child.write(b"") == 0
        child.close_stdin()
        assert child.wait() == 0

    def test_stdin_not_captured(self, spawn_python):
        child = spawn_python("pass", use_stdout=True)
        assert child.write(b"ignored") == 0

    def test_after_close_stdin(self, spawn_python):
        child = spawn_python(ECHO_STDIN, use_stdin=True, use_stdout=True)
        child.close_stdin()
        assert child.write(b"late") == 0

    def test_child_closed_stdin(self, spawn_python):
        # Far more than a pipe buffer, so the write must notice the broken pipe.
        payload = b"x" * (4 * 1024 * 1024)
        child = spawn_python("import os; os.close(0)", use_stdin=True)
        child.wait()
        written = child.write(payload)
        assert 0 <= written < len(payload)
        if not IS_WINDOWS:
            assert written == 0

    def test_interactive_exchange(self, spawn_python):
        child = spawn_python(
            "import sys\n"
            "for line in sys.stdin.buffer:\n"
            "    sys.stdout.buffer.write(line.upper()); sys.stdout.flush()\n",
            use_stdin=True,
            use_stdout=True,
        )
        for word in (b"one", b"two"):
            child.write(word + b"\n")
            line = child.read_stdout(len(word) + 1, timeout_ms=10000)
            assert line == word.upper() + b"\n"
        child.close_stdin()
        assert child.wait() == 0

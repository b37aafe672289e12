"""Command-line quoting, argument vectors and environment blocks."""

import pytest

from pysubpipe import EncodingError, build_command_line, build_environment_block
from pysubpipe.encoding import build_argv, build_environ, quote_argument


class TestQuoteArgument:
    @pytest.mark.parametrize(
        "arg,expected",
        [
            ("abc", "abc"),
            ("", '""'),
            ("a b", '"a b"'),
            ("a\tb", '"a\tb"'),
            ('a"b', r'"a\"b"'),
            (r"a\b", r"a\b"),
            (r"C:\dir\\", r"C:\dir\\"),
            (r"a\\b c", r'"a\\b c"'),
            ("a b\\", r'"a b\\"'),
            ("a b\\\\", r'"a b\\\\"'),
            (r'a\"b', r'"a\\\"b"'),
            (r'a\\"b', r'"a\\\\\"b"'),
            ('"', r'"\""'),
        ],
    )
    def test_quote(self, arg, expected):
        assert quote_argument(arg) == expected

    def test_nul_is_an_error(self):
        with pytest.raises(EncodingError):
            quote_argument("a\0b")


class TestBuildCommandLine:
    def test_joins_with_single_spaces(self):
        assert build_command_line("prog", ["a", "b c", ""]) == 'prog a "b c" ""'

    def test_program_is_quoted_too(self):
        assert (
            build_command_line(r"C:\Program Files\app.exe", ["-v"])
            == r'"C:\Program Files\app.exe" -v'
        )

    def test_no_args(self):
        assert build_command_line("prog", []) == "prog"

    def test_nul_in_program(self):
        with pytest.raises(EncodingError):
            build_command_line("pr\0g", [])


class TestBuildArgv:
    def test_program_is_argv0(self):
        assert build_argv("ls", ["-l", "a b"]) == ["ls", "-l", "a b"]

    def test_args_pass_through_unquoted(self):
        assert build_argv("echo", ['"', "", "\\"]) == ["echo", '"', "", "\\"]

    def test_nul_is_a_value_error(self):
        with pytest.raises(ValueError):
            build_argv("echo", ["a\0b"])


class TestEnvironment:
    def test_block(self):
        assert build_environment_block({"A": "1", "B": "x y"}) == "A=1\0B=x y\0\0"

    def test_empty_keys_are_skipped(self):
        assert build_environment_block({"": "ignored", "A": "1"}) == "A=1\0\0"

    def test_empty_block_still_terminated(self):
        assert build_environment_block({"": "ignored"}) == "\0\0"

    def test_each_key_once(self):
        block = build_environment_block({"A": "1", "B": "2", "C": "3"})
        entries = block.rstrip("\0").split("\0")
        assert sorted(entries) == ["A=1", "B=2", "C=3"]

    def test_empty_value_allowed(self):
        assert build_environ({"A": ""}) == {"A": ""}

    @pytest.mark.parametrize(
        "env", [{"A\0": "1"}, {"A": "1\0"}, {"A=B": "1"}], ids=["nul-key", "nul-value", "equals-key"]
    )
    def test_invalid(self, env):
        with pytest.raises(EncodingError):
            build_environ(env)
        with pytest.raises(EncodingError):
            build_environment_block(env)

"""SpawnOptions dataclass."""

import dataclasses

import pytest

from pysubpipe import SpawnOptions


class TestSpawnOptions:
    def test_defaults(self):
        options = SpawnOptions()
        assert options.use_stdin is False
        assert options.use_stdout is False
        assert options.use_stderr is False
        assert options.combine_stdout_stderr is False
        assert options.env == {}
        assert options.cwd is None

    def test_frozen(self):
        options = SpawnOptions()
        with pytest.raises(dataclasses.FrozenInstanceError):
            options.use_stdout = True  # type: ignore

    def test_env_default_is_not_shared(self):
        assert SpawnOptions().env is not SpawnOptions().env

    def test_stderr_pipe_only_when_not_combined(self):
        assert SpawnOptions(use_stderr=True).creates_stderr_pipe
        assert not SpawnOptions(use_stderr=True, combine_stdout_stderr=True).creates_stderr_pipe
        assert not SpawnOptions().creates_stderr_pipe

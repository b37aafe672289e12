"""Shared fixtures: spawn Python children and always clean them up."""

import sys
from typing import Callable, Iterator, List

import pytest

import pysubpipe


@pytest.fixture
def spawn() -> Iterator[Callable[..., pysubpipe.ProcessHandle]]:
    """Spawn children with pysubpipe.spawn(); close them all at teardown."""
    handles: List[pysubpipe.ProcessHandle] = []

    def _spawn(program, args=(), **options) -> pysubpipe.ProcessHandle:
        handle = pysubpipe.spawn(program, args, pysubpipe.SpawnOptions(**options))
        handles.append(handle)
        return handle

    yield _spawn

    for handle in handles:
        handle.close()


@pytest.fixture
def spawn_python(spawn) -> Callable[..., pysubpipe.ProcessHandle]:
    """Spawn ``python -c script`` with the current interpreter."""

    def _spawn_python(script: str, **options) -> pysubpipe.ProcessHandle:
        return spawn(sys.executable, ["-c", script], **options)

    return _spawn_python

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Union


@dataclass(frozen=True)
class SpawnOptions:
    """
    Which streams to capture, and where and how the child should run.

    Streams that are not captured are inherited from the calling process.
    """

    use_stdin: bool = False
    """
    Create a pipe the parent writes to and the child reads as stdin.
    """

    use_stdout: bool = False
    """
    Create a pipe the child writes to as stdout.
    """

    use_stderr: bool = False
    """
    Create a pipe the child writes to as stderr.

    Ignored when ``combine_stdout_stderr`` is set.
    """

    combine_stdout_stderr: bool = False
    """
    Point the child's stderr at the same descriptor as its stdout.

    Both streams then arrive, interleaved, through ``read_stdout()``.
    """

    env: Mapping[str, str] = field(default_factory=dict)
    """
    Complete environment for the child. Empty (default) means "inherit the
    calling process's environment verbatim".
    """

    cwd: Optional[Union[str, os.PathLike]] = None
    """
    Working directory for the child (default: inherit).
    """

    @property
    def creates_stderr_pipe(self) -> bool:
        return self.use_stderr and not self.combine_stdout_stderr

"""AWS CLI commands used for backup offload."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from .types import CommandResult

if TYPE_CHECKING:
    from .runner import CommandRunner


class AwsCommands:
    """Object storage sync through the ``aws`` CLI."""

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def s3_sync(
        self, source: Path, destination: str, *, region: str | None = None
    ) -> CommandResult:
        """Mirror a local directory to an S3 prefix.

        ``--delete`` keeps the remote copy in step with local retention.
        """
        cmd = ["aws", "s3", "sync", str(source), destination, "--delete"]
        if region:
            cmd += ["--region", region]
        return self._runner.run(cmd)

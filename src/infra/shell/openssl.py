"""OpenSSL commands for the self-signed bootstrap certificate."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from .types import CommandResult

if TYPE_CHECKING:
    from .runner import CommandRunner


class OpenSSLCommands:
    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def self_signed_certificate(
        self, cert_file: Path, key_file: Path, common_name: str, days: int = 3650
    ) -> CommandResult:
        return self._runner.run(
            [
                "openssl",
                "req",
                "-new",
                "-newkey",
                "rsa:4096",
                "-days",
                str(days),
                "-nodes",
                "-x509",
                "-subj",
                f"/CN={common_name}",
                "-keyout",
                str(key_file),
                "-out",
                str(cert_file),
            ]
        )

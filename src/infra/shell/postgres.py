"""PostgreSQL client tool commands (pg_isready, pg_dump, pg_restore, psql)."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from .types import CommandResult

if TYPE_CHECKING:
    from .runner import CommandRunner


@dataclass(frozen=True)
class ClientTarget:
    """Where and as whom the client tools connect."""

    host: str
    port: int
    user: str
    password: str | None = None

    def args(self) -> list[str]:
        return ["-h", self.host, "-p", str(self.port), "-U", self.user]

    def env(self) -> dict[str, str]:
        return {"PGPASSWORD": self.password} if self.password else {}


class PostgresTools:
    """Wrappers for the PostgreSQL command-line client tools."""

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def is_ready(self, target: ClientTarget) -> bool:
        """Check that the server accepts connections."""
        result = self._runner.run(
            ["pg_isready", "-q", "-h", target.host, "-p", str(target.port)]
        )
        return result.success

    def dump(
        self,
        target: ClientTarget,
        database: str,
        output: Path,
        *,
        compress: bool = True,
    ) -> CommandResult:
        """Dump one database in custom (binary, compressed) format."""
        cmd = ["pg_dump", *target.args(), "-Fc"]
        if not compress:
            cmd += ["-Z", "0"]
        cmd += ["-f", str(output), database]
        return self._runner.run(cmd, env=target.env())

    def dump_globals(self, target: ClientTarget, output: Path) -> CommandResult:
        """Dump roles and tablespaces, which per-database dumps omit."""
        cmd = ["pg_dumpall", *target.args(), "--globals-only", "-f", str(output)]
        return self._runner.run(cmd, env=target.env())

    def list_archive(self, artifact: Path) -> CommandResult:
        """Read a custom-format archive's table of contents (validates it)."""
        return self._runner.run(["pg_restore", "--list", str(artifact)])

    def restore_archive(
        self,
        target: ClientTarget,
        database: str,
        artifact: Path,
        *,
        role: str | None = None,
    ) -> CommandResult:
        """Restore a custom-format archive with clean-if-exists semantics."""
        cmd = [
            "pg_restore",
            *target.args(),
            "-d",
            database,
            "--clean",
            "--if-exists",
            "--no-owner",
            "--no-acl",
            "--single-transaction",
            "--exit-on-error",
        ]
        if role:
            cmd.append(f"--role={role}")
        cmd.append(str(artifact))
        return self._runner.run(cmd, env=target.env())

    def run_sql_file(
        self,
        target: ClientTarget,
        database: str,
        sql_file: Path,
        *,
        role: str | None = None,
    ) -> CommandResult:
        """Apply a plain SQL dump in one transaction, stopping on the first error."""
        cmd = [
            "psql",
            *target.args(),
            "-d",
            database,
            "-v",
            "ON_ERROR_STOP=1",
            "--single-transaction",
        ]
        if role:
            cmd += ["-c", f"SET ROLE {role}"]
        cmd += ["-f", str(sql_file)]
        return self._runner.run(cmd, env=target.env())

"""One end-to-end application of a configuration record to the host.

Order of steps:
1. postgresql.conf directives
2. SSL certificate and directives, WAL archive directory
3. allow-list into pg_hba.conf and the firewall
4. pgbouncer.ini and the pooler credential store
5. service reloads (restarts when a changed setting needs one)
6. backup cron file
7. state file

Every step is idempotent. A failing step aborts the pass with earlier steps
left applied and the state file untouched, so re-running is the recovery.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from src.cli.shared.console import console
from src.infra.access import AccessControlReconciler, HbaFile, ReconcileReport, UfwFirewall
from src.infra.access.firewall import ManagedFirewall
from src.infra.constants import DEFAULT_CONSTANTS, ProvisionPaths
from src.infra.errors import PatchError
from src.infra.locking import advisory_lock
from src.infra.patching import DirectivePatcher
from src.infra.postgres.pooler import PGBOUNCER_INI_SKELETON, UserList, pgbouncer_directives
from src.infra.postgres.services import ServiceManager
from src.infra.postgres.settings import postgresql_directives, prepare_wal_archive, ssl_directives
from src.infra.postgres.ssl import chown_postgres, ensure_certificate
from src.infra.shell import ClientTarget, ShellCommands
from src.infra.state import ConfigRecord, StateStore
from src.utils.files import atomic_write_text

from .cron import render_cron


@dataclass
class PassReport:
    """What one configuration pass changed."""

    conf_changed: list[str] = field(default_factory=list)
    certificate_generated: bool = False
    access: ReconcileReport = field(default_factory=ReconcileReport)
    pgbouncer_changed: list[str] = field(default_factory=list)
    cron_written: bool = False

    @property
    def changed(self) -> bool:
        return bool(
            self.conf_changed
            or self.certificate_generated
            or self.access.changed
            or self.pgbouncer_changed
            or self.cron_written
        )


class ReconciliationPass:
    """Applies a configuration record to every managed artifact."""

    def __init__(
        self,
        store: StateStore,
        paths: ProvisionPaths,
        commands: ShellCommands,
        *,
        patcher: DirectivePatcher | None = None,
        firewall: ManagedFirewall | None = None,
        reload_services: bool = True,
    ) -> None:
        """Initialize the pass.

        Args:
            store: Where the record is saved once the pass succeeds
            paths: Host paths
            commands: Host commands
            patcher: Directive patcher (one per pass, so one backup per file)
            firewall: Firewall artifact; defaults to UFW
            reload_services: Reload PostgreSQL/PgBouncer after patching
        """
        self._store = store
        self._paths = paths
        self._commands = commands
        self._patcher = patcher or DirectivePatcher()
        self._firewall = firewall
        self._reload_services = reload_services
        self._console = console

    def run(self, record: ConfigRecord) -> PassReport:
        """Apply record to the host and save it.

        Raises:
            ProvisioningError: From the step that failed; the state file is
                not written in that case
            LockError: If a backup or another pass is running
        """
        with advisory_lock(self._paths.lock_file):
            report = PassReport()
            paths = self._paths.for_version(record.pg_version)

            self._console.print_step("PostgreSQL configuration")
            report.conf_changed = self._patcher.upsert_many(
                paths.pg_conf, postgresql_directives(record)
            )
            prepare_wal_archive(record, paths)

            report.certificate_generated = ensure_certificate(
                record, paths, self._commands.openssl
            )
            report.conf_changed += self._patcher.upsert_many(paths.pg_conf, ssl_directives(record))
            self._console.ok(f"postgresql.conf: {len(report.conf_changed)} setting(s) changed")

            self._console.print_step("Access control")
            report.access = self._apply_access(record, paths)
            for entry, reason in report.access.skipped:
                self._console.warn(f"Skipped allow-list entry {entry!r}: {reason}")
            self._console.ok(
                f"{len(report.access.auth_added)} auth rule(s), "
                f"{len(report.access.firewall_added)} firewall rule(s) added"
            )

            if record.enable_pgbouncer:
                self._console.print_step("Connection pooler")
                report.pgbouncer_changed = self._apply_pgbouncer(record, paths)
                self._console.ok(f"pgbouncer.ini: {len(report.pgbouncer_changed)} setting(s) changed")

            if self._reload_services:
                self._reload(record, report)

            report.cron_written = self._write_cron(record, paths)

            self._store.save(record)
            logger.info(f"Configuration pass complete; state saved to {self._store.path}")
            return report

    def _apply_access(self, record: ConfigRecord, paths: ProvisionPaths) -> ReconcileReport:
        firewall = None
        if record.enable_firewall:
            firewall = self._firewall or UfwFirewall(self._commands.ufw)
            firewall.apply_defaults(record.ssh_port, DEFAULT_CONSTANTS.SSH_RULE_LABEL)

        reconciler = AccessControlReconciler.from_record(record)
        report = reconciler.reconcile(record.allowed_ips, HbaFile(paths.pg_hba), firewall)

        if firewall is not None:
            firewall.enable()
        return report

    def _apply_pgbouncer(self, record: ConfigRecord, paths: ProvisionPaths) -> list[str]:
        ini = paths.pgbouncer_ini
        if not ini.exists():
            try:
                ini.parent.mkdir(parents=True, exist_ok=True)
                atomic_write_text(ini, PGBOUNCER_INI_SKELETON, mode=0o640)
            except OSError as e:
                raise PatchError(ini, None, f"cannot create file: {e}") from e
            chown_postgres(ini)
            logger.info(f"Created {ini}")

        changed: list[str] = []
        for section, directives in pgbouncer_directives(record).items():
            changed += self._patcher.upsert_many(ini, directives, section)

        UserList(paths.pgbouncer_userlist).ensure_exists()
        return changed

    def _reload(self, record: ConfigRecord, report: PassReport) -> None:
        services = ServiceManager(
            self._commands, ClientTarget("localhost", record.port, DEFAULT_CONSTANTS.SUPERUSER)
        )
        pending = sorted(
            DEFAULT_CONSTANTS.POSTGRES_RESTART_SETTINGS.intersection(report.conf_changed)
        )
        if pending:
            logger.info(f"Restart needed to apply: {', '.join(pending)}")
            services.restart_postgres()
        else:
            services.reload_postgres()

        if not record.enable_pgbouncer:
            return
        if DEFAULT_CONSTANTS.PGBOUNCER_RESTART_SETTINGS.intersection(report.pgbouncer_changed):
            services.restart_pgbouncer()
        else:
            services.reload_pgbouncer()

    def _write_cron(self, record: ConfigRecord, paths: ProvisionPaths) -> bool:
        cron_file = paths.cron_file
        if not record.enable_backups:
            if cron_file.exists():
                cron_file.unlink()
                logger.info(f"Backups disabled; removed {cron_file}")
                return True
            return False

        content = render_cron(record)
        if cron_file.exists() and cron_file.read_text(encoding="utf-8") == content:
            return False
        try:
            cron_file.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_text(cron_file, content, mode=0o644)
        except OSError as e:
            raise PatchError(cron_file, None, f"cannot write cron file: {e}") from e
        logger.info(f"Wrote {cron_file} ({record.backup_schedule})")
        return True

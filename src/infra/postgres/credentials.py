"""Database role, database and pooler credential provisioning."""

from __future__ import annotations

from dataclasses import dataclass, field

import psycopg2
from loguru import logger
from psycopg2 import sql

from src.cli.shared.console import console
from src.infra.constants import DEFAULT_CONSTANTS
from src.infra.errors import CredentialError
from src.infra.shell import SystemctlCommands

from .connection import PostgresConnection
from .pooler import HashScheme, UserList, pooler_hash


@dataclass(frozen=True)
class CredentialPair:
    """A role, its database and the secret both sides were set up with."""

    role: str
    database: str
    secret: str = field(repr=False)
    pooler_hash: str | None = field(default=None, repr=False)
    role_created: bool = False
    database_created: bool = False


class CredentialProvisioner:
    """Creates a login role and its database, and registers it with the pooler.

    Database steps run first. The pooler store is only touched once they all
    succeeded, so a failure never leaves a pooler entry for a role whose
    password was not set.
    """

    def __init__(
        self,
        connection: PostgresConnection,
        systemctl: SystemctlCommands,
        userlist: UserList | None = None,
        hash_scheme: HashScheme = "scram-sha-256",
    ) -> None:
        """Initialize the provisioner.

        Args:
            connection: Superuser connection to the local cluster
            systemctl: Used to reload the pooler after its store changes
            userlist: Pooler credential store, or None when the pooler is disabled
            hash_scheme: Verifier format sent to the server and written to the
                pooler store; SCRAM is always used when the pooler is disabled
        """
        self._connection = connection
        self._systemctl = systemctl
        self._userlist = userlist
        self._hash_scheme = hash_scheme
        self._console = console

    def create_credential(
        self,
        database: str,
        role: str,
        secret: str,
        *,
        owner_only: bool = False,
    ) -> CredentialPair:
        """Ensure role and database exist and the pooler knows the role.

        Args:
            database: Database name
            role: Login role name
            secret: Password for the role
            owner_only: Skip the grant on the public schema

        Returns:
            The provisioned credential pair

        Raises:
            CredentialError: On invalid input or any failed step
        """
        self._validate(database, role, secret)

        # The server and the pooler must hold the identical verifier (same salt
        # and iteration count) for pass-through authentication to succeed.
        scheme = self._hash_scheme if self._userlist is not None else "scram-sha-256"
        stored_hash = pooler_hash(role, secret, scheme)

        try:
            role_created = self._ensure_role(role, stored_hash)
            database_created = self._ensure_database(database, role)
            self._grant(database, role, owner_only)
        except psycopg2.Error as e:
            raise CredentialError(
                f"Failed to provision role {role!r} on database {database!r}",
                str(e).strip() or type(e).__name__,
            ) from e
        finally:
            self._connection.close()

        if self._userlist is not None:
            self._userlist.upsert(role, stored_hash)
            self._reload_pooler(role)

        self._console.ok(f"Database '{database}' and role '{role}' are ready")
        return CredentialPair(
            role=role,
            database=database,
            secret=secret,
            pooler_hash=stored_hash,
            role_created=role_created,
            database_created=database_created,
        )

    def _validate(self, database: str, role: str, secret: str) -> None:
        for kind, name in (("database", database), ("role", role)):
            if not DEFAULT_CONSTANTS.IDENTIFIER_PATTERN.match(name or ""):
                raise CredentialError(
                    f"Invalid {kind} name {name!r}",
                    "Names must start with a letter or underscore and contain at most "
                    "63 letters, digits or underscores.",
                )
        if not secret:
            raise CredentialError(f"Empty password for role {role!r}")

    def _ensure_role(self, role: str, verifier: str) -> bool:
        exists = self._connection.scalar("SELECT 1 FROM pg_roles WHERE rolname = %s", (role,))
        if exists:
            # Existing roles keep everything except the password
            self._connection.execute_script(
                sql.SQL("ALTER ROLE {} WITH LOGIN PASSWORD %s").format(sql.Identifier(role)),
                (verifier,),
            )
            logger.info(f"Role {role!r} exists; password updated")
            return False

        self._connection.execute_script(
            sql.SQL("CREATE ROLE {} WITH LOGIN PASSWORD %s").format(sql.Identifier(role)),
            (verifier,),
        )
        logger.info(f"Role {role!r} created")
        return True

    def _ensure_database(self, database: str, role: str) -> bool:
        exists = self._connection.scalar(
            "SELECT 1 FROM pg_database WHERE datname = %s", (database,)
        )
        if exists:
            logger.info(f"Database {database!r} exists; owner left unchanged")
            return False

        self._connection.execute_script(
            sql.SQL("CREATE DATABASE {} OWNER {}").format(
                sql.Identifier(database), sql.Identifier(role)
            )
        )
        logger.info(f"Database {database!r} created with owner {role!r}")
        return True

    def _grant(self, database: str, role: str, owner_only: bool) -> None:
        self._connection.execute_script(
            sql.SQL("GRANT ALL PRIVILEGES ON DATABASE {} TO {}").format(
                sql.Identifier(database), sql.Identifier(role)
            )
        )
        if not owner_only:
            self._connection.execute_script(
                sql.SQL("GRANT ALL ON SCHEMA public TO {}").format(sql.Identifier(role)),
                database=database,
            )

    def _reload_pooler(self, role: str) -> None:
        result = self._systemctl.reload(DEFAULT_CONSTANTS.PGBOUNCER_SERVICE)
        if not result.success:
            raise CredentialError(
                f"Pooler entry for {role!r} written but pgbouncer reload failed",
                result.output or None,
            )
        logger.info("pgbouncer reloaded")

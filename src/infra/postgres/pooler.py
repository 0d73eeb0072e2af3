"""PgBouncer credential store and configuration.

PgBouncer authenticates clients against ``userlist.txt`` before it opens a
server connection, so every role reachable through the pooler needs an entry
whose hash matches the password the role has in PostgreSQL.

Supported hash schemes:
- ``scram-sha-256``: a standard SCRAM verifier
  (``SCRAM-SHA-256$<iterations>:<salt>$<StoredKey>:<ServerKey>``)
- ``md5``: ``"md5" + md5(secret + role)``
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
from pathlib import Path
from typing import Literal

from loguru import logger

from src.infra.constants import DEFAULT_CONSTANTS
from src.infra.errors import CredentialError
from src.infra.state.record import ConfigRecord
from src.utils.files import atomic_write_text

from .ssl import chown_postgres

HashScheme = Literal["scram-sha-256", "md5"]

SCRAM_PREFIX = "SCRAM-SHA-256$"
USERLIST_MODE = 0o600


def _scram_keys(secret: str, salt: bytes, iterations: int) -> tuple[bytes, bytes]:
    salted = hashlib.pbkdf2_hmac("sha256", secret.encode("utf-8"), salt, iterations)
    client_key = hmac.new(salted, b"Client Key", hashlib.sha256).digest()
    stored_key = hashlib.sha256(client_key).digest()
    server_key = hmac.new(salted, b"Server Key", hashlib.sha256).digest()
    return stored_key, server_key


def scram_sha256_verifier(
    secret: str,
    *,
    salt: bytes | None = None,
    iterations: int = DEFAULT_CONSTANTS.SCRAM_ITERATIONS,
) -> str:
    """Build a SCRAM-SHA-256 verifier in the format PostgreSQL stores."""
    salt = salt if salt is not None else secrets.token_bytes(16)
    stored_key, server_key = _scram_keys(secret, salt, iterations)
    b64 = base64.b64encode
    return (
        f"{SCRAM_PREFIX}{iterations}:{b64(salt).decode()}"
        f"${b64(stored_key).decode()}:{b64(server_key).decode()}"
    )


def md5_hash(role: str, secret: str) -> str:
    return "md5" + hashlib.md5((secret + role).encode("utf-8")).hexdigest()


def pooler_hash(role: str, secret: str, scheme: HashScheme = "scram-sha-256") -> str:
    """Hash a role's secret for the pooler credential store."""
    if scheme == "md5":
        return md5_hash(role, secret)
    return scram_sha256_verifier(secret)


def verify_pooler_secret(stored_hash: str, role: str, secret: str) -> bool:
    """Check a secret against a stored md5 or SCRAM-SHA-256 hash."""
    if stored_hash.startswith(SCRAM_PREFIX):
        try:
            iter_salt, keys = stored_hash[len(SCRAM_PREFIX) :].split("$", 1)
            iterations, salt_b64 = iter_salt.split(":", 1)
            stored_b64, server_b64 = keys.split(":", 1)
            salt = base64.b64decode(salt_b64, validate=True)
            expected_stored = base64.b64decode(stored_b64, validate=True)
            expected_server = base64.b64decode(server_b64, validate=True)
            stored_key, server_key = _scram_keys(secret, salt, int(iterations))
        except ValueError:
            return False
        return hmac.compare_digest(stored_key, expected_stored) and hmac.compare_digest(
            server_key, expected_server
        )

    if stored_hash.startswith("md5"):
        return hmac.compare_digest(stored_hash, md5_hash(role, secret))

    # Plain-text entries are valid in userlist.txt
    return hmac.compare_digest(stored_hash, secret)


def _quote(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def _parse_userlist_line(line: str) -> tuple[str, str] | None:
    """Parse ``"role" "hash"``; doubled quotes escape a quote."""
    fields: list[str] = []
    i = 0
    text = line.strip()
    while i < len(text):
        if text[i].isspace():
            i += 1
            continue
        if text[i] != '"':
            return None
        i += 1
        buf: list[str] = []
        while i < len(text):
            if text[i] == '"':
                if i + 1 < len(text) and text[i + 1] == '"':
                    buf.append('"')
                    i += 2
                    continue
                break
            buf.append(text[i])
            i += 1
        else:
            return None
        fields.append("".join(buf))
        i += 1
    if len(fields) < 2:
        return None
    return fields[0], fields[1]


class UserList:
    """The pooler credential store (``userlist.txt``)."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_lines(self) -> list[str]:
        if not self._path.exists():
            return []
        try:
            return self._path.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError) as e:
            raise CredentialError(
                f"Cannot read pooler credential store {self._path}", str(e)
            ) from e

    def entries(self) -> dict[str, str]:
        result: dict[str, str] = {}
        for line in self._read_lines():
            parsed = _parse_userlist_line(line)
            if parsed and parsed[0] not in result:
                result[parsed[0]] = parsed[1]
        return result

    def lookup(self, role: str) -> str | None:
        """Return the stored hash for a role."""
        return self.entries().get(role)

    def upsert(self, role: str, password_hash: str) -> bool:
        """Set the entry for a role, replacing any existing ones.

        Returns:
            True if the file changed
        """
        lines = self._read_lines()
        entry = f"{_quote(role)} {_quote(password_hash)}"
        updated: list[str] = []
        replaced = False
        for line in lines:
            parsed = _parse_userlist_line(line)
            if parsed and parsed[0] == role:
                if not replaced:
                    updated.append(entry)
                    replaced = True
                continue
            updated.append(line)
        if not replaced:
            updated.append(entry)

        created = not self._path.exists()
        if updated == lines and not created:
            return False
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_text(self._path, "\n".join(updated) + "\n", mode=USERLIST_MODE)
        except OSError as e:
            raise CredentialError(
                f"Cannot write pooler credential store {self._path}", str(e)
            ) from e
        if created:
            chown_postgres(self._path)
        logger.info(f"{self._path}: entry for {role!r} updated")
        return True

    def ensure_exists(self) -> None:
        if not self._path.exists():
            self._path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_text(self._path, "", mode=USERLIST_MODE)
            chown_postgres(self._path)


def pgbouncer_directives(record: ConfigRecord) -> dict[str, list[tuple[str, str]]]:
    """Directives per ``pgbouncer.ini`` section for a record."""
    return {
        "databases": [
            (
                "*",
                f"host=127.0.0.1 port={record.port} "
                f"pool_size={record.pgbouncer_default_pool_size}",
            ),
        ],
        "pgbouncer": [
            ("listen_addr", "0.0.0.0"),
            ("listen_port", str(record.pgbouncer_port)),
            ("auth_type", record.pgbouncer_auth_type),
            ("auth_file", "/etc/pgbouncer/userlist.txt"),
            ("pool_mode", record.pgbouncer_pool_mode),
            ("max_client_conn", str(record.pgbouncer_max_client_conn)),
            ("default_pool_size", str(record.pgbouncer_default_pool_size)),
            ("server_reset_query", "DISCARD ALL"),
            ("server_check_delay", "30"),
            ("max_db_connections", str(record.max_connections)),
            ("log_connections", "1"),
            ("log_disconnections", "1"),
            ("log_pooler_errors", "1"),
            ("stats_period", "60"),
        ],
    }


PGBOUNCER_INI_SKELETON = """\
;; PgBouncer configuration (managed by pg-provision)

[databases]

[pgbouncer]
"""

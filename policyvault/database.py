"""SQLite-backed persistence for accounts, policies and nominees."""
from __future__ import annotations

import logging
import re
import secrets
import sqlite3
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Generic, List, Mapping, Optional, TypeVar

from passlib.context import CryptContext

from .errors import DuplicateEmail, ValidationError
from .models import Account, Nominee, Policy, PolicyStatus

logger = logging.getLogger("policyvault.database")

T = TypeVar("T")

_IDENTIFIER_PATTERN = re.compile(r"[0-9a-f]{24}")

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "policyvault.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _generate_id() -> str:
    return secrets.token_hex(12)


def normalize_identifier(value: object) -> Optional[str]:
    """Return the canonical form of a record identifier, or ``None`` if malformed."""

    if not isinstance(value, str):
        return None
    candidate = value.strip().lower()
    if not _IDENTIFIER_PATTERN.fullmatch(candidate):
        return None
    return candidate


def is_valid_identifier(value: object) -> bool:
    return normalize_identifier(value) is not None


def _hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_credential(password: str, hashed: str) -> bool:
    """Return ``True`` if ``password`` matches the stored one-way hash."""

    if not password or not hashed:
        return False
    try:
        return _pwd_context.verify(password, hashed)
    except (ValueError, TypeError):
        return False


def _to_column_value(value: object) -> object:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return _serialize_datetime(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


class _OwnedCollection(Generic[T]):
    """Owner-scoped CRUD over a single table.

    Every read for a caller goes through :meth:`find_one_by_id_and_owner`:
    a record that belongs to someone else is reported exactly like a record
    that does not exist (ownership-opaque not-found).
    """

    table: str = ""
    mutable_columns: tuple[str, ...] = ()
    defaults: Mapping[str, object] = {}

    def __init__(self, connect: Callable[[], sqlite3.Connection]) -> None:
        self._connect = connect

    def find_all_by_owner(self, owner_id: str) -> List[T]:
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM {self.table} WHERE owner_id = ? ORDER BY created_at, rowid",
                (owner_id,),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def find_one_by_id_and_owner(self, record_id: str, owner_id: str) -> Optional[T]:
        canonical = normalize_identifier(record_id)
        if canonical is None:
            return None
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT * FROM {self.table} WHERE id = ? AND owner_id = ?",
                (canonical, owner_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def get(self, record_id: str) -> Optional[T]:
        with self._connect() as conn:
            row = conn.execute(f"SELECT * FROM {self.table} WHERE id = ?", (record_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def insert(self, owner_id: str, fields: Mapping[str, object]) -> T:
        """Insert a record owned by ``owner_id`` and return it with its new identifier."""

        values: Dict[str, object] = dict(self.defaults)
        for column in self.mutable_columns:
            if column in fields and fields[column] is not None:
                values[column] = _to_column_value(fields[column])
            elif column not in values:
                values[column] = None
        values.update(self._extra_insert_columns(fields))

        record_id = _generate_id()
        columns = ["id", "owner_id", *values.keys(), "created_at"]
        params = [record_id, owner_id, *values.values(), _serialize_datetime(_current_timestamp())]
        placeholders = ", ".join("?" for _ in columns)

        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO {self.table} ({', '.join(columns)}) VALUES ({placeholders})",
                params,
            )

        record = self.get(record_id)
        if record is None:
            raise RuntimeError(f"Failed to load {self.table} record after creation")
        return record

    def update_by_id(self, record_id: str, fields: Mapping[str, object]) -> Optional[T]:
        """Apply a partial update. Unknown keys and ``None`` values are ignored."""

        updates: List[str] = []
        values: List[object] = []
        for column in self.mutable_columns:
            if column not in fields:
                continue
            value = fields[column]
            if value is None:
                continue
            updates.append(f"{column} = ?")
            values.append(_to_column_value(value))

        if not updates:
            return self.get(record_id)

        values.append(record_id)
        query = f"UPDATE {self.table} SET {', '.join(updates)} WHERE id = ?"

        with self._connect() as conn:
            cursor = conn.execute(query, values)
            if cursor.rowcount == 0:
                return None

        return self.get(record_id)

    def delete_by_id(self, record_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(f"DELETE FROM {self.table} WHERE id = ?", (record_id,))
            return cursor.rowcount > 0

    def _extra_insert_columns(self, fields: Mapping[str, object]) -> Dict[str, object]:
        return {}

    def _row_to_record(self, row: sqlite3.Row) -> T:  # pragma: no cover - abstract
        raise NotImplementedError


class PolicyStore(_OwnedCollection[Policy]):
    table = "policies"
    mutable_columns = ("name", "company", "value", "premium", "start_date", "end_date", "status")
    defaults = {"status": PolicyStatus.ACTIVE.value}

    def _row_to_record(self, row: sqlite3.Row) -> Policy:
        return Policy(
            id=str(row["id"]),
            owner_id=str(row["owner_id"]),
            name=str(row["name"]),
            company=str(row["company"]),
            value=float(row["value"]),
            premium=float(row["premium"]),
            start_date=str(row["start_date"]),
            end_date=str(row["end_date"]),
            status=str(row["status"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )


class NomineeStore(_OwnedCollection[Nominee]):
    table = "nominees"
    mutable_columns = ("name", "relationship", "email", "phone", "verified", "status")
    defaults = {"verified": 0, "status": "Active"}

    def find_all_by_policy(self, policy_id: str) -> List[Nominee]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM nominees WHERE policy_id = ? ORDER BY created_at, rowid",
                (policy_id,),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def delete_all_by_policy_id(self, policy_id: str) -> int:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM nominees WHERE policy_id = ?", (policy_id,))
            return cursor.rowcount

    def _extra_insert_columns(self, fields: Mapping[str, object]) -> Dict[str, object]:
        policy_id = normalize_identifier(fields.get("policy_id"))
        if policy_id is None:
            raise ValueError("Nominee requires a valid policy reference")
        return {"policy_id": policy_id}

    def _row_to_record(self, row: sqlite3.Row) -> Nominee:
        return Nominee(
            id=str(row["id"]),
            owner_id=str(row["owner_id"]),
            policy_id=str(row["policy_id"]),
            name=str(row["name"]),
            relationship=str(row["relationship"]),
            email=str(row["email"]),
            phone=str(row["phone"]),
            verified=bool(row["verified"]),
            status=str(row["status"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )


class Database:
    """Simple wrapper around SQLite for persisting accounts and their records."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path
        self.policies = PolicyStore(self._connect)
        self.nominees = NomineeStore(self._connect)

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS policies (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL REFERENCES accounts(id),
                    name TEXT NOT NULL,
                    company TEXT NOT NULL,
                    value REAL NOT NULL CHECK (value > 0),
                    premium REAL NOT NULL CHECK (premium > 0),
                    start_date TEXT NOT NULL,
                    end_date TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'Active'
                        CHECK (status IN ('Active', 'Pending', 'Renewal Due')),
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS nominees (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL REFERENCES accounts(id),
                    policy_id TEXT NOT NULL REFERENCES policies(id),
                    name TEXT NOT NULL,
                    relationship TEXT NOT NULL,
                    email TEXT NOT NULL,
                    phone TEXT NOT NULL,
                    verified INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'Active',
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_policies_owner_id ON policies(owner_id);
                CREATE INDEX IF NOT EXISTS idx_nominees_owner_id ON nominees(owner_id);
                CREATE INDEX IF NOT EXISTS idx_nominees_policy_id ON nominees(policy_id);
                """
            )

    # ------------------------------------------------------------------
    # Account management
    # ------------------------------------------------------------------
    def create_account(self, name: Optional[str], email: str, password: str) -> Account:
        """Register a new account. Raises :class:`DuplicateEmail` if the email is taken."""

        normalized_email = (email or "").strip().lower()
        if not normalized_email:
            raise ValidationError("Email is required")
        if not password:
            raise ValidationError("Password is required")

        display_name = (name or "").strip() or normalized_email.split("@", 1)[0]
        account_id = _generate_id()
        created_at = _current_timestamp()
        password_hash = _hash_password(password)

        with self._connect() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO accounts (id, name, email, password_hash, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        account_id,
                        display_name,
                        normalized_email,
                        password_hash,
                        _serialize_datetime(created_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateEmail() from exc

        return Account(id=account_id, name=display_name, email=normalized_email, created_at=created_at)

    def get_account(self, account_id: str) -> Optional[Account]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM accounts WHERE id = ?", (account_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_account(row)

    def get_account_by_email(self, email: str) -> Optional[Account]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM accounts WHERE email = ?",
                ((email or "").strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_account(row)

    def authenticate_account(self, email: str, password: str) -> Optional[Account]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM accounts WHERE email = ?",
                ((email or "").strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        if not verify_credential(password, row["password_hash"]):
            return None
        return self._row_to_account(row)

    # ------------------------------------------------------------------
    # Policy lifecycle
    # ------------------------------------------------------------------
    def delete_policy_cascade(self, policy_id: str) -> int:
        """Delete a policy after removing every nominee that references it.

        Returns the number of nominees removed. The nominee delete always runs
        first so an interruption can never leave nominees pointing at a
        missing policy.
        """

        removed = self.nominees.delete_all_by_policy_id(policy_id)
        self.policies.delete_by_id(policy_id)
        logger.info("Deleted policy %s and %d associated nominee(s)", policy_id, removed)
        return removed

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_account(self, row: sqlite3.Row) -> Account:
        return Account(
            id=str(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )


__all__ = [
    "Database",
    "NomineeStore",
    "PolicyStore",
    "is_valid_identifier",
    "normalize_identifier",
    "resolve_database_path",
    "verify_credential",
]

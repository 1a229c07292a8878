"""
PostgreSQL repository adapter - Implements DonorStore and FailedLoginLog protocols.

This module provides the PostgreSQL implementation of the domain's
store port using psycopg3 with raw SQL.

Failure mapping:
---------------
- Pool checkout timeouts, connection errors and statements cancelled by
  ``statement_timeout`` (QueryCanceled is an OperationalError) become UNAVAILABLE
  results, never NOT_FOUND. The domain surfaces them as a retryable
  StoreUnavailable.
- Unique violations on insert are mapped by constraint name:
  ``donors_pkey`` (identity token) -> DUPLICATE_IDENTITY,
  ``donors_email_key`` -> DUPLICATE_EMAIL. The constraint is the only
  arbiter of concurrent registrations; nothing is reported as created
  before the INSERT commits.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import psycopg
from psycopg import errors, sql
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout

from donorauth.domain.identity import short_token
from donorauth.domain.ports import (
    AuditEntry,
    DonorRecord,
    InsertOutcome,
    LookupResult,
    UpdateOutcome,
)

logger = logging.getLogger(__name__)

# donorauth/adapters/repository/postgres.py -> <project root>/migrations
MIGRATIONS_DIR = Path(__file__).resolve().parents[3] / "migrations"

_COLUMNS = """
    donor_hash_id, donor_id, email, email_verified, account_activated, is_active,
    password_hash, salt, avis_donor_center, preferred_language,
    preferred_communication_channel, total_donations_this_year,
    last_donation_date, created_at
"""

# Domain field name -> column name, for update()
_UPDATABLE_COLUMNS = {
    "email_verified": "email_verified",
    "account_activated": "account_activated",
    "is_active": "is_active",
    "password_hash": "password_hash",
    "salt": "salt",
    "preferred_language": "preferred_language",
    "preferred_communication_channel": "preferred_communication_channel",
    "total_donations_this_year": "total_donations_this_year",
    "last_donation_date": "last_donation_date",
}

_CONSTRAINT_OUTCOMES = {
    "donors_pkey": InsertOutcome.DUPLICATE_IDENTITY,
    "donors_email_key": InsertOutcome.DUPLICATE_EMAIL,
}

_STORE_ERRORS = (psycopg.OperationalError, PoolTimeout)


def _row_to_record(row: dict[str, Any]) -> DonorRecord:
    return DonorRecord(
        identity_token=row["donor_hash_id"].strip(),
        donor_id=row["donor_id"],
        email=row["email"],
        email_verified=row["email_verified"],
        account_activated=row["account_activated"],
        is_active=row["is_active"],
        password_hash=row["password_hash"].strip() if row["password_hash"] else None,
        salt=row["salt"],
        donation_center=row["avis_donor_center"],
        preferred_language=row["preferred_language"],
        preferred_communication_channel=row["preferred_communication_channel"],
        total_donations_this_year=row["total_donations_this_year"],
        last_donation_date=row["last_donation_date"],
        created_at=row["created_at"],
    )


class PostgresDonorStore:
    """
    Implements DonorStore protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool, timeout_seconds: float = 5.0) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
            timeout_seconds: Max wait for a pooled connection
        """
        self._pool = pool
        self._timeout = timeout_seconds

    def find_by_identity(self, identity_token: str) -> LookupResult:
        return self._find_one(
            f"SELECT {_COLUMNS} FROM donors WHERE donor_hash_id = %s",
            (identity_token,),
            label=short_token(identity_token),
        )

    def find_by_email(self, email: str) -> LookupResult:
        return self._find_one(
            f"SELECT {_COLUMNS} FROM donors WHERE email = %s",
            (email,),
            label="email",
        )

    def insert(self, record: DonorRecord) -> InsertOutcome:
        """
        Insert a donor row in the pending-verification state.

        Returns:
            CREATED on commit, DUPLICATE_* when a unique constraint rejects
            the row, UNAVAILABLE on connection failure
        """
        insert_sql = """
            INSERT INTO donors (
                donor_hash_id, donor_id, email, email_verified, account_activated,
                is_active, avis_donor_center, preferred_language,
                preferred_communication_channel, created_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, COALESCE(%s, NOW()))
        """
        params = (
            record.identity_token,
            record.donor_id,
            record.email,
            record.email_verified,
            record.account_activated,
            record.is_active,
            record.donation_center,
            record.preferred_language,
            record.preferred_communication_channel,
            record.created_at,
        )

        try:
            with self._pool.connection(timeout=self._timeout) as conn, conn.cursor() as cursor:
                cursor.execute(insert_sql, params)
                conn.commit()
        except errors.UniqueViolation as e:
            constraint = e.diag.constraint_name
            logger.info("Donor insert rejected by constraint %s", constraint)
            return _CONSTRAINT_OUTCOMES.get(constraint, InsertOutcome.DUPLICATE_IDENTITY)
        except _STORE_ERRORS as e:
            logger.error("Donor insert failed: %s", e)
            return InsertOutcome.UNAVAILABLE
        return InsertOutcome.CREATED

    def update(self, identity_token: str, fields: dict[str, Any]) -> UpdateOutcome:
        unknown = set(fields) - set(_UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Unsupported donor fields: {sorted(unknown)}")

        assignments = sql.SQL(", ").join(
            sql.SQL("{} = {}").format(
                sql.Identifier(_UPDATABLE_COLUMNS[name]), sql.Placeholder()
            )
            for name in fields
        )
        update_sql = sql.SQL(
            "UPDATE donors SET {}, updated_at = NOW() WHERE donor_hash_id = %s"
        ).format(assignments)

        try:
            with self._pool.connection(timeout=self._timeout) as conn, conn.cursor() as cursor:
                cursor.execute(update_sql, (*fields.values(), identity_token))
                conn.commit()
                updated = cursor.rowcount == 1
        except _STORE_ERRORS as e:
            logger.error("Donor update failed for %s: %s", short_token(identity_token), e)
            return UpdateOutcome.UNAVAILABLE
        return UpdateOutcome.UPDATED if updated else UpdateOutcome.NOT_FOUND

    def append_audit_log(self, entry: AuditEntry) -> None:
        audit_sql = """
            INSERT INTO audit_logs (user_id, user_type, action, details, status)
            VALUES (%s, %s, %s, %s, %s)
        """
        with self._pool.connection(timeout=self._timeout) as conn:
            conn.execute(
                audit_sql,
                (entry.actor_id, entry.actor_type, entry.action, entry.details, entry.status),
            )
            conn.commit()

    def record_failed_login(self, identity_token: str, at: datetime) -> None:
        try:
            with self._pool.connection(timeout=self._timeout) as conn:
                conn.execute(
                    "INSERT INTO failed_logins (donor_hash_id, attempted_at) VALUES (%s, %s)",
                    (identity_token, at),
                )
                conn.commit()
        except _STORE_ERRORS as e:
            logger.error("Failed login not recorded for %s: %s", short_token(identity_token), e)

    def count_failed_logins(self, identity_token: str, since: datetime) -> int | None:
        """Failures after ``since``; None when the store cannot answer."""
        try:
            with self._pool.connection(timeout=self._timeout) as conn, conn.cursor() as cursor:
                cursor.execute(
                    "SELECT COUNT(*) FROM failed_logins"
                    " WHERE donor_hash_id = %s AND attempted_at > %s",
                    (identity_token, since),
                )
                (count,) = cursor.fetchone()
        except _STORE_ERRORS as e:
            logger.error(
                "Failed login count unavailable for %s: %s", short_token(identity_token), e
            )
            return None
        return count

    def clear_failed_logins(self, identity_token: str) -> None:
        try:
            with self._pool.connection(timeout=self._timeout) as conn:
                conn.execute(
                    "DELETE FROM failed_logins WHERE donor_hash_id = %s", (identity_token,)
                )
                conn.commit()
        except _STORE_ERRORS as e:
            logger.error("Failed logins not cleared for %s: %s", short_token(identity_token), e)

    def _find_one(self, query: str, params: tuple, label: str) -> LookupResult:
        try:
            with self._pool.connection(timeout=self._timeout) as conn, conn.cursor(
                row_factory=dict_row
            ) as cursor:
                cursor.execute(query, params)
                row = cursor.fetchone()
        except _STORE_ERRORS as e:
            logger.error("Donor lookup failed (%s): %s", label, e)
            return LookupResult.unavailable(str(e))

        if row is None:
            return LookupResult.not_found()
        return LookupResult.found(_row_to_record(row))


def run_migrations(pool: ConnectionPool, directory: Path = MIGRATIONS_DIR) -> None:
    """
    Apply the donor schema migrations in filename order.

    Every file is idempotent (CREATE ... IF NOT EXISTS), so the whole set
    runs on each startup. A failing file aborts startup with a
    MigrationError naming it; the donor store is never served on a
    partially applied schema.
    """
    sql_files = sorted(directory.glob("*.sql")) if directory.is_dir() else []
    if not sql_files:
        logger.warning("No donor schema migrations under %s", directory)
        return

    with pool.connection() as conn:
        for sql_file in sql_files:
            try:
                conn.execute(sql_file.read_text())
                conn.commit()
            except psycopg.Error as e:
                conn.rollback()
                logger.error("Migration %s failed: %s", sql_file.name, e)
                raise MigrationError(sql_file.name) from e
            logger.info("Applied migration %s", sql_file.name)


class MigrationError(RuntimeError):
    """A schema migration file could not be applied."""

    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__(f"Database migration failed: {filename}")

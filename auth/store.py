"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user /
_row_to_reset_token are the mappers. Three tables: users, password_reset_tokens
and refresh_tokens. Services and routes never touch SQL.

Security:
  All queries use bound parameters. No f-strings in SQL.

  password_reset_tokens and refresh_tokens store only token_hash (SHA-256
  hex). The UNIQUE index on token_hash makes lookup O(1) and keeps one hash
  from mapping to two rows.

  consume_reset_token() is race-sensitive. It is a single conditional UPDATE
  ("not consumed and not expired"); the rowcount tells the caller whether it
  won. Two concurrent consumers of the same token serialize on the row write
  and exactly one sees rowcount == 1.

  delete_refresh_token() follows the same rule for refresh rotation: the
  DELETE is the check, and only the caller that removed the row may mint a
  new pair.

Timestamps are stored as fixed-width ISO 8601 UTC strings (microsecond
precision, +00:00 suffix) so that SQL string comparison matches time order.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from auth.models import ResetTokenRecord, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255)),
    Column("hashed_password", Text),  # NULL for OAuth-only users
    Column("oauth_provider", String(30)),
    Column("oauth_subject", Text),
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
    Column("is_active", Integer, nullable=False, server_default="1"),
)

_reset_tokens = Table(
    "password_reset_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # SHA-256 hex
    Column("expires_at", String(32), nullable=False),
    Column("consumed_at", String(32)),
    Column("created_at", String(32), nullable=False),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # SHA-256 hex
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and a busy timeout on every new connection.

    WAL lets readers proceed during writes. busy_timeout makes a second writer
    wait for the lock instead of failing immediately, which is what concurrent
    reset-token consumers rely on. PRAGMAs are per-connection in SQLite.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA busy_timeout=5000")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(moment: datetime) -> str:
    """Render a datetime as the fixed-width UTC string used in every column."""
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User credentials and password-reset records.

    Usage:
        store = UserStore("sqlite:///:memory:")
        uid = store.create_user(User(email="a@example.com", hashed_password=hasher.hash("secret-pass")))
        user = store.get_by_email("a@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        engine_args: dict = {}
        if db_url.startswith("sqlite"):
            engine_args["connect_args"] = {"check_same_thread": False}
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            # One connection for every thread, or each thread sees an empty DB.
            engine_args["poolclass"] = StaticPool
        self.engine: Engine = create_engine(db_url, **engine_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        AuthService.register() turns that into a CONFLICT error, which covers
        the race where two registrations pass the existence check together.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email,
                    name=user.name,
                    hashed_password=user.hashed_password,
                    oauth_provider=user.oauth_provider,
                    oauth_subject=user.oauth_subject,
                    created_at=_now_iso(),
                    is_active=1 if user.is_active else 0,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact (already normalized) email. None if absent."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_password(self, user_id: int, hashed_password: str) -> bool:
        """Overwrite the stored credential. Returns False if user_id is unknown."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(hashed_password=hashed_password)
            )
            conn.commit()
        return result.rowcount > 0

    def set_active(self, user_id: int, is_active: bool) -> bool:
        """Enable or disable an account. Administrative helper; no route calls it.

        Inactive accounts fail login, refresh and the bearer gate, and are
        skipped by password-reset requests.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(is_active=1 if is_active else 0)
            )
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))
            conn.commit()

    # ------------------------------------------------------------------
    # Password reset tokens
    # ------------------------------------------------------------------

    def create_reset_token(self, record: ResetTokenRecord) -> int:
        """Insert a reset-token row (hash only) and return its ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _reset_tokens.insert().values(
                    user_id=record.user_id,
                    token_hash=record.token_hash,
                    expires_at=record.expires_at,
                    consumed_at=None,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_reset_token_by_hash(self, token_hash: str) -> ResetTokenRecord | None:
        """Return the record for token_hash regardless of state. Used by tests and audits."""
        with self.engine.connect() as conn:
            row = conn.execute(_reset_tokens.select().where(_reset_tokens.c.token_hash == token_hash)).fetchone()
        return _row_to_reset_token(row) if row is not None else None

    def list_reset_tokens(self, user_id: int) -> list[ResetTokenRecord]:
        """Return every reset-token row for a user, newest first. Used by tests and audits."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _reset_tokens.select()
                .where(_reset_tokens.c.user_id == user_id)
                .order_by(_reset_tokens.c.id.desc())
            ).fetchall()
        return [_row_to_reset_token(r) for r in rows]

    def delete_pending_reset_tokens(self, user_id: int) -> int:
        """Delete a user's unconsumed reset tokens. Returns the number removed.

        Called before issuing a new token so only the most recent emailed link
        works. Consumed rows are kept as an audit trail.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _reset_tokens.delete().where(
                    (_reset_tokens.c.user_id == user_id) & (_reset_tokens.c.consumed_at.is_(None))
                )
            )
            conn.commit()
        return result.rowcount

    def consume_reset_token(self, token_hash: str, now: datetime) -> int | None:
        """Atomically mark a live token consumed and return its user_id.

        Returns None when no row matches, the row is expired, or it was already
        consumed. The caller cannot tell the three cases apart.

        The UPDATE and the user_id read share one transaction (engine.begin()),
        and the WHERE clause re-checks consumed_at, so a concurrent consumer
        that loses the race sees rowcount == 0.
        """
        now_iso = to_iso(now)
        with self.engine.begin() as conn:
            result = conn.execute(
                _reset_tokens.update()
                .where(
                    (_reset_tokens.c.token_hash == token_hash)
                    & (_reset_tokens.c.consumed_at.is_(None))
                    & (_reset_tokens.c.expires_at > now_iso)
                )
                .values(consumed_at=now_iso)
            )
            if result.rowcount != 1:
                return None
            return conn.execute(
                _reset_tokens.select()
                .with_only_columns(_reset_tokens.c.user_id)
                .where(_reset_tokens.c.token_hash == token_hash)
            ).scalar_one()

    def purge_expired_reset_tokens(self, now: datetime) -> int:
        """Delete reset tokens whose expiry has passed. Returns rows removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_reset_tokens.delete().where(_reset_tokens.c.expires_at <= to_iso(now)))
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    def create_refresh_token(self, user_id: int, token_hash: str, expires_at: str) -> int:
        """Record an issued refresh token by hash and return the row ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.insert().values(
                    user_id=user_id,
                    token_hash=token_hash,
                    expires_at=expires_at,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def delete_refresh_token(self, token_hash: str, user_id: int | None = None) -> bool:
        """Remove one refresh-token row. Returns True only for the caller that removed it.

        With user_id set, the row must also belong to that user.
        """
        condition = _refresh_tokens.c.token_hash == token_hash
        if user_id is not None:
            condition = condition & (_refresh_tokens.c.user_id == user_id)
        with self.engine.begin() as conn:
            result = conn.execute(_refresh_tokens.delete().where(condition))
        return result.rowcount == 1

    def delete_refresh_tokens_for_user(self, user_id: int) -> int:
        """Remove every refresh token a user holds. Returns rows removed."""
        with self.engine.begin() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.user_id == user_id))
        return result.rowcount

    def count_refresh_tokens(self, user_id: int) -> int:
        """Return how many refresh tokens a user holds. Used by tests and audits."""
        with self.engine.connect() as conn:
            return conn.execute(
                select(func.count()).select_from(_refresh_tokens).where(_refresh_tokens.c.user_id == user_id)
            ).scalar_one()

    def purge_expired_refresh_tokens(self, now: datetime) -> int:
        """Delete refresh tokens whose expiry has passed. Returns rows removed."""
        with self.engine.begin() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.expires_at <= to_iso(now)))
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        oauth_provider=row.oauth_provider,
        oauth_subject=row.oauth_subject,
        created_at=row.created_at,
        last_login=row.last_login,
        is_active=bool(row.is_active),
    )


def _row_to_reset_token(row) -> ResetTokenRecord:
    return ResetTokenRecord(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        expires_at=row.expires_at,
        consumed_at=row.consumed_at,
        created_at=row.created_at,
    )

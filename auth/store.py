"""
auth/store.py -- SQLAlchemy Core persistence layer for identities and roles.

Pattern: Repository + Data Mapper. IdentityStore is the repository;
_row_to_identity / _row_to_role are the mappers. Services never touch SQL.

The store is deliberately document-shaped: find by key, insert, update by id.
Anything cleverer (permission merging, bootstrap reconciliation) belongs to
auth/access.py.

Security:
  All queries use bound parameters. No f-strings in SQL.

Schema notes:
  roles.scope_key is organization_id, or "" for global roles. UNIQUE(name,
  scope_key) then rejects two global roles with the same name. A UNIQUE over
  the nullable organization_id would not: SQLite treats two NULLs as distinct.

  identity_roles.position keeps each identity's role references in assignment
  order.

  roles.resources holds the permission matrix as JSON text.

DB URL: Settings.auth_db_url (core/config.py).

Layer rule: no imports from api/ or orgs/.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import Identity, Role
from auth.permissions import PermissionMatrix

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_identities = Table(
    "identities",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("full_name", String(255), nullable=False, server_default=""),
    Column("email_verified_at", String(32)),
    Column("created_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("name", String(100), nullable=False),
    Column("organization_id", String(32)),  # NULL = global role
    Column("scope_key", String(32), nullable=False, server_default=""),
    Column("resources", Text, nullable=False, server_default="{}"),  # JSON matrix
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("name", "scope_key", name="uq_role_name_scope"),
)

_identity_roles = Table(
    "identity_roles",
    _metadata,
    Column("identity_id", String(32), primary_key=True),
    Column("role_id", String(32), primary_key=True),
    Column("position", Integer, nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class IdentityStore:
    """Repository for Identity and Role entities.

    Usage:
        store = IdentityStore(get_settings().auth_db_url)
        identity_id = store.create_identity(Identity(email="a@x.com", hashed_password=...))
        store.assign_role(identity_id, role_id)
        roles = store.get_roles(store.get_by_id(identity_id).role_ids)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Identity queries
    # ------------------------------------------------------------------

    def create_identity(self, identity: Identity) -> str:
        """Insert a new identity (and its role references) and return its id.

        Raises sqlalchemy.exc.IntegrityError if the email is already taken.
        Callers treat that as "someone else registered it first".
        """
        identity_id = identity.id or _new_id()
        with self.engine.begin() as conn:
            conn.execute(
                _identities.insert().values(
                    id=identity_id,
                    email=identity.email,
                    hashed_password=identity.hashed_password,
                    full_name=identity.full_name,
                    email_verified_at=identity.email_verified_at,
                    created_at=_now_iso(),
                )
            )
            for position, role_id in enumerate(dict.fromkeys(identity.role_ids)):
                conn.execute(_identity_roles.insert().values(identity_id=identity_id, role_id=role_id, position=position))
        return identity_id

    def get_by_id(self, identity_id: str) -> Identity | None:
        with self.engine.connect() as conn:
            row = conn.execute(_identities.select().where(_identities.c.id == identity_id)).fetchone()
            if row is None:
                return None
            return _row_to_identity(row, self._role_ids(conn, row.id))

    def get_by_email(self, email: str) -> Identity | None:
        """Look up an identity by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_identities.select().where(_identities.c.email == email)).fetchone()
            if row is None:
                return None
            return _row_to_identity(row, self._role_ids(conn, row.id))

    def update_identity(self, identity_id: str, **fields) -> Identity | None:
        """Update mutable identity fields and return the re-read record.

        Accepted fields: full_name, hashed_password, email_verified_at.
        Returns None when no row matched, which the auth service reports as a
        persistence failure.
        """
        unknown = set(fields) - {"full_name", "hashed_password", "email_verified_at"}
        if unknown:
            raise ValueError(f"Unknown identity fields: {unknown!r}")
        with self.engine.begin() as conn:
            result = conn.execute(_identities.update().where(_identities.c.id == identity_id).values(**fields))
        if result.rowcount == 0:
            return None
        return self.get_by_id(identity_id)

    def find_role_holders(self, role_id: str) -> list[Identity]:
        """Return every identity that references role_id, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _identities.select()
                .join(_identity_roles, _identity_roles.c.identity_id == _identities.c.id)
                .where(_identity_roles.c.role_id == role_id)
                .order_by(_identities.c.created_at)
            ).fetchall()
            return [_row_to_identity(r, self._role_ids(conn, r.id)) for r in rows]

    def assign_role(self, identity_id: str, role_id: str) -> bool:
        """Append role_id to the identity's role references.

        Returns False if the identity already holds the role.
        """
        with self.engine.begin() as conn:
            existing = conn.execute(
                select(_identity_roles.c.role_id).where(
                    (_identity_roles.c.identity_id == identity_id) & (_identity_roles.c.role_id == role_id)
                )
            ).fetchone()
            if existing is not None:
                return False
            position = conn.execute(
                select(func.coalesce(func.max(_identity_roles.c.position) + 1, 0)).where(
                    _identity_roles.c.identity_id == identity_id
                )
            ).scalar()
            conn.execute(_identity_roles.insert().values(identity_id=identity_id, role_id=role_id, position=position))
        return True

    @staticmethod
    def _role_ids(conn, identity_id: str) -> list[str]:
        rows = conn.execute(
            select(_identity_roles.c.role_id)
            .where(_identity_roles.c.identity_id == identity_id)
            .order_by(_identity_roles.c.position)
        ).fetchall()
        return [r.role_id for r in rows]

    # ------------------------------------------------------------------
    # Role queries
    # ------------------------------------------------------------------

    def create_role(self, role: Role) -> str:
        """Insert a role and return its id.

        Raises sqlalchemy.exc.IntegrityError if (name, organization) is taken.
        """
        role_id = role.id or _new_id()
        with self.engine.begin() as conn:
            conn.execute(
                _roles.insert().values(
                    id=role_id,
                    name=role.name,
                    organization_id=role.organization_id,
                    scope_key=role.organization_id or "",
                    resources=json.dumps(role.resources.to_dict()),
                    created_at=_now_iso(),
                )
            )
        return role_id

    def get_role(self, role_id: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.id == role_id)).fetchone()
        return _row_to_role(row) if row is not None else None

    def find_role(self, name: str, organization_id: str | None = None) -> Role | None:
        """Look up a role by name within a scope (None = global)."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _roles.select().where((_roles.c.name == name) & (_roles.c.scope_key == (organization_id or "")))
            ).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_roles(self, role_ids: Iterable[str]) -> list[Role]:
        """Hydrate role references in the given order, skipping dangling ids."""
        ids = list(dict.fromkeys(role_ids))
        if not ids:
            return []
        with self.engine.connect() as conn:
            rows = conn.execute(_roles.select().where(_roles.c.id.in_(ids))).fetchall()
        by_id = {r.id: _row_to_role(r) for r in rows}
        return [by_id[i] for i in ids if i in by_id]

    def list_roles(self, organization_id: str | None = None) -> list[Role]:
        """All roles, or only those scoped to organization_id when given."""
        stmt = _roles.select().order_by(_roles.c.name)
        if organization_id is not None:
            stmt = stmt.where(_roles.c.organization_id == organization_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_role(r) for r in rows]

    def update_role_resources(self, role_id: str, resources: PermissionMatrix) -> Role | None:
        """Replace a role's matrix. Returns the re-read role, or None if missing."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _roles.update().where(_roles.c.id == role_id).values(resources=json.dumps(resources.to_dict()))
            )
        if result.rowcount == 0:
            return None
        return self.get_role(role_id)

    def count_roles(self, name: str, organization_id: str | None = None) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(_roles)
                .where((_roles.c.name == name) & (_roles.c.scope_key == (organization_id or "")))
            ).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_identity(row, role_ids: list[str]) -> Identity:
    return Identity(
        id=row.id,
        email=row.email,
        hashed_password=row.hashed_password,
        full_name=row.full_name or "",
        email_verified_at=row.email_verified_at,
        role_ids=role_ids,
        created_at=row.created_at,
    )


def _row_to_role(row) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        organization_id=row.organization_id,
        resources=PermissionMatrix.from_dict(json.loads(row.resources or "{}")),
        created_at=row.created_at,
    )

"""
orgs/store.py -- SQLAlchemy-backed persistence layer for organizations.

Uses SQLAlchemy Core (not ORM) so orgs/models.Organization stays the domain
representation. Same Repository + Data Mapper split as auth/store.py.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = OrganizationStore(get_settings().orgs_db_url)     # SQLite by default
    store = OrganizationStore("postgresql://user:pw@host/db") # PostgreSQL
    org_id = store.create_organization(Organization(name="Acme"))
    store.update_organization(org_id, description="Widgets")
    store.close()
"""

import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

from orgs.models import Organization

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_organizations = Table(
    "organizations",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("description", Text, nullable=False, server_default=""),
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class OrganizationStore:
    """Repository for Organization entities."""

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def create_organization(self, organization: Organization) -> str:
        """Insert an organization and return its id.

        Raises sqlalchemy.exc.IntegrityError if the name is already taken.
        """
        org_id = organization.id or uuid.uuid4().hex
        with self.engine.begin() as conn:
            conn.execute(
                _organizations.insert().values(
                    id=org_id,
                    name=organization.name,
                    description=organization.description or "",
                    created_at=_now_iso(),
                )
            )
        return org_id

    def get_organization(self, org_id: str) -> Optional[Organization]:
        with self.engine.connect() as conn:
            row = conn.execute(_organizations.select().where(_organizations.c.id == org_id)).fetchone()
        return _row_to_organization(row) if row is not None else None

    def get_by_name(self, name: str) -> Optional[Organization]:
        with self.engine.connect() as conn:
            row = conn.execute(_organizations.select().where(_organizations.c.name == name)).fetchone()
        return _row_to_organization(row) if row is not None else None

    def list_organizations(self, ids: Optional[Iterable[str]] = None) -> list[Organization]:
        """Return organizations ordered by name, optionally limited to ids."""
        stmt = _organizations.select().order_by(_organizations.c.name)
        if ids is not None:
            stmt = stmt.where(_organizations.c.id.in_(list(ids)))
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_organization(r) for r in rows]

    def update_organization(self, org_id: str, **fields) -> Optional[Organization]:
        """Update name/description and return the re-read record (None if missing)."""
        unknown = set(fields) - {"name", "description"}
        if unknown:
            raise ValueError(f"Unknown organization fields: {unknown!r}")
        if not fields:
            return self.get_organization(org_id)
        with self.engine.begin() as conn:
            result = conn.execute(_organizations.update().where(_organizations.c.id == org_id).values(**fields))
        if result.rowcount == 0:
            return None
        return self.get_organization(org_id)

    def delete_organization(self, org_id: str) -> Optional[Organization]:
        """Delete and return the removed record, or None if it did not exist."""
        existing = self.get_organization(org_id)
        if existing is None:
            return None
        with self.engine.begin() as conn:
            conn.execute(_organizations.delete().where(_organizations.c.id == org_id))
        return existing

    def close(self) -> None:
        self.engine.dispose()


def _row_to_organization(row) -> Organization:
    return Organization(
        id=row.id,
        name=row.name,
        description=row.description or "",
        created_at=row.created_at,
    )

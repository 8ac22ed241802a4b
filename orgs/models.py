"""
orgs/models.py -- Domain dataclass for tenants.

An Organization is the tenant boundary: roles scoped to it only grant access
inside it. It carries no logic; orgs/store.py persists it and the route layer
asks auth/access.py whether a caller may touch it.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Organization:
    """A tenant. id is None before the record is written to the database."""

    name: str
    description: str = ""
    id: Optional[str] = None
    created_at: str = ""  # ISO 8601, set by store on insert

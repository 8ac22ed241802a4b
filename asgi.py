"""
asgi.py -- Application assembly for OrgWarden.

The HTTP surface lives entirely in api/; this module is the stable import path
for ASGI servers so deployment config never names an internal package.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]

"""auth/ -- Identity, session, and access-control core for OrgWarden.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or orgs/.
api/ imports from auth/, not the other way around.
"""

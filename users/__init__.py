"""users/ -- User documents and the follow graph stored on them.

Layer rule: users/ imports only stdlib + third-party libraries + core/.
It does NOT import from api/ or auth/. Roles are stored as plain strings
("user" | "admin"); auth/models.Role owns their meaning.
"""

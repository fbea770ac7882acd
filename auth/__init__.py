"""auth/ -- Authentication and authorization package for FollowGraph.

Layer rule: auth/ imports only stdlib + third-party libraries + core/ at
runtime. It does NOT import from api/, and users/ only under TYPE_CHECKING
(auth/tokens.py annotations); the store is reached through app.state.
api/ imports from auth/, not the other way around.
"""

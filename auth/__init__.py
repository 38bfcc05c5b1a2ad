"""auth/ -- Identity and access-control core for AccessGate.

Password hashing, credential policy, stateless tokens, user authentication
and role/voter authorization. See auth/services.py for how the pieces are
wired together.

Layer rule: auth/ imports only stdlib + third-party libraries, plus core/
for Settings. It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""

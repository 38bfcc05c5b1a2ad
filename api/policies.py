"""
api/policies.py -- RolePolicy definitions for the protected endpoints.

Policies are deployment configuration: fixed at import time, one per kind of
protected operation. Routes reference them through auth.dependencies.require_policy().

  ADMIN_ONLY     admins; basic_authorization lets them through explicitly
  ADMIN_OR_SELF  any role, but non-admins only on their own record
  SELF_ONLY      any role, own record only -- admins included
  AUTHENTICATED  any valid token with a known role
"""

from auth.authorization import RolePolicy, basic_authorization, owner_only
from auth.models import ALL_ROLES, Role

# Path parameter naming the identity a /users/{user_id} route acts on.
USER_ID_PARAM = "user_id"

ADMIN_ONLY = RolePolicy({Role.admin.value}, [basic_authorization])

ADMIN_OR_SELF = RolePolicy(ALL_ROLES, [basic_authorization, owner_only(USER_ID_PARAM)])

SELF_ONLY = RolePolicy(ALL_ROLES, [owner_only(USER_ID_PARAM)])

AUTHENTICATED = RolePolicy(ALL_ROLES)

"""
Entitlements API route.

- GET /api/user/entitlements: current entitlements for the calling user

Authentication happens upstream; the authenticated external user id arrives
in the X-User-Id header.
"""
from typing import Optional

from fastapi import APIRouter, Header

from callgate.core.errors import UnauthorizedError
from callgate.features.entitlements.service import compute_entitlements


router = APIRouter(prefix="/api/user", tags=["entitlements"])


@router.get("/entitlements")
def get_entitlements(x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")):
    """
    Return the caller's entitlements (camelCase contract).

    Errors:
        401: no user id
        400: malformed user id
        503: storage unavailable
    """
    if x_user_id is None:
        raise UnauthorizedError("Unauthorized")
    return compute_entitlements(x_user_id).to_response()

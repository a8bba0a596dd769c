"""Authentication routes.

Routes:
- POST /login  - Exchange credentials for a session cookie
- POST /logout - Invalidate the session
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Cookie, HTTPException, Response

from unitsync.config import get_config
from unitsync.web.auth import create_session, verify_credentials
from unitsync.web.auth import logout as auth_logout
from unitsync.web.models import LoginRequest

logger = logging.getLogger(__name__)

# Create router with auth tag
router = APIRouter(tags=["authentication"])


# ============================================================================
# Authentication Routes
# ============================================================================


@router.post("/login")
async def login(body: LoginRequest, response: Response):
    """Verify credentials and set an httponly session cookie."""
    if not verify_credentials(body.username, body.password):
        logger.warning(f"Failed login attempt for {body.username}")
        raise HTTPException(status_code=401, detail="Invalid credentials")

    session_token = create_session(body.username)
    response.set_cookie(
        key="session",
        value=session_token,
        httponly=True,
        samesite="lax",
        max_age=get_config().auth.session_expiry_hours * 3600,
    )
    return {"success": True, "username": body.username}


@router.post("/logout")
async def logout(response: Response, session: str | None = Cookie(default=None)):
    auth_logout(session)
    response.delete_cookie("session")
    return {"success": True}

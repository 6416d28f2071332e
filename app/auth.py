"""Request identity dependency.

Authentication is performed upstream (the LMS session layer or an API
gateway), which forwards the authenticated user id in a trusted header
(AUTH_USER_HEADER, default "X-Authenticated-User"). Requests without the
header are anonymous.
"""

from fastapi import Request

from app.config import get_auth_user_header


def get_optional_user_id(request: Request) -> str | None:
    """Return the authenticated user id, or None for anonymous callers."""
    user_id = request.headers.get(get_auth_user_header(), "").strip()
    return user_id or None

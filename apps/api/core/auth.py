"""
Authentication dependencies.

Identity is verified by the external identity layer; these dependencies
turn its Bearer token into a `Client` row or a 401.
"""
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from core.database import get_db
from core.exceptions import ForbiddenError, UnauthorizedError
from core.security import decode_access_token
from models import Client

# Use auto_error=False to handle missing credentials manually and return 401 (not 403)
security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Client:
    """
    Get the current authenticated client from the JWT token.

    Raises UnauthorizedError if the token is invalid or the client is unknown,
    ForbiddenError if the client is blocked.
    """
    if not credentials:
        raise UnauthorizedError("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise UnauthorizedError("Invalid authentication credentials")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token payload")

    try:
        user_id_uuid = UUID(user_id)
    except ValueError:
        raise UnauthorizedError("Invalid user ID format")

    user = db.query(Client).filter(Client.id == user_id_uuid).first()
    if not user:
        raise UnauthorizedError("User not found")

    if user.is_blocked:
        raise ForbiddenError("Account is blocked")

    return user

"""Authentication helpers and FastAPI security dependencies.

`decode_token` verifies a JWT issued by `AuthService.authenticate`;
`get_current_user` is the bearer dependency every `/api` router uses.
`actor` resolves the acting user's name and client address, which
services record in audit entries.
"""

from typing import Optional, Tuple

import jwt
from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .database import engine

bearer_scheme = HTTPBearer()


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises an HTTPException
    with status 401 on failure.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail='token expired')
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail='invalid token')


def get_current_user(credentials: HTTPAuthorizationCredentials = Security(bearer_scheme)) -> models.User:
    """FastAPI dependency that returns the authenticated user.

    Raises HTTPException(401) for any authentication issue.
    """
    payload = decode_token(credentials.credentials)
    user_id = payload.get('user_id')
    if not user_id:
        raise HTTPException(status_code=401, detail='invalid token payload')
    with Session(engine) as session:
        user = repositories.UserRepository(session).get(user_id)
        if not user:
            raise HTTPException(status_code=401, detail='user not found')
        return user


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def actor(request: Request, user: models.User = Depends(get_current_user)) -> Tuple[str, Optional[str]]:
    """`(user_name, ip_address)` for the service constructors."""
    return user.username, client_ip(request)

from typing import Optional

from fastapi import Cookie, Header
from jose import JWTError, jwt

from .config import settings
from .errors import Unauthorized


def current_user_id(access_token: Optional[str] = Cookie(default=None, alias="accessToken"),
                    authorization: Optional[str] = Header(default=None),
                    ) -> str:
    """Resolve the caller from the access token issued by the auth service."""
    token = access_token
    if not token and authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer":
            token = credentials.strip()
    if not token:
        raise Unauthorized()

    try:
        claims = jwt.decode(token, settings.jwt_access_secret.get_secret_value(), algorithms=["HS256"])
    except JWTError:
        raise Unauthorized("Token expired or invalid")

    user_id = claims.get("id") or claims.get("sub")
    if not user_id:
        raise Unauthorized("Token expired or invalid")
    return str(user_id)

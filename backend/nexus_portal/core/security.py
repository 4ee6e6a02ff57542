import logging
from typing import List, Optional

import jwt
from fastapi import HTTPException, Depends, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..core.config import settings
from ..db.repository import CrmRepository, get_repository
from ..schemas.auth import CurrentUser

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

ALLOWED_ROLES = ["admin", "sales", "user"]

LANDING_ROUTES = {
    "admin": "/admin",
    "sales": "/sales",
}


def landing_for(role: Optional[str]) -> str:
    return LANDING_ROUTES.get(role or "", "/")


def decode_token(token: str) -> dict:
    """Verify a provider-issued access token and return its claims."""
    return jwt.decode(
        token,
        settings.SUPABASE_JWT_SECRET,
        algorithms=[settings.JWT_ALGORITHM],
        audience=settings.JWT_AUDIENCE,
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    repo: CrmRepository = Depends(get_repository),
) -> CurrentUser:
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Non autorisé")
    try:
        payload = decode_token(credentials.credentials)
    except jwt.PyJWTError as e:
        logger.info("Rejected token: %s", e)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session invalide ou expirée")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session invalide")

    role = await repo.get_user_role(user_id)
    return CurrentUser(id=user_id, email=payload.get("email"), role=role)


def require_roles(roles: List[str]):
    invalid = [r for r in roles if r not in ALLOWED_ROLES]
    if invalid:
        raise ValueError(f"Invalid roles: {invalid}")

    async def _dep(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            detail = "Accès réservé aux administrateurs" if roles == ["admin"] else "Accès refusé"
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
        return user
    return _dep

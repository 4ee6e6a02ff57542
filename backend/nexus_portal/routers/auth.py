from fastapi import APIRouter, Depends

from ..schemas.auth import CurrentUser, MeResponse
from ..core.security import get_current_user, landing_for

router = APIRouter(prefix="/auth", tags=["auth"])


# ==============================
# CURRENT USER
# ==============================
@router.get("/me", response_model=MeResponse)
async def me(current_user: CurrentUser = Depends(get_current_user)):
    """Who is calling, with the page the front-end should send them to."""
    return MeResponse(
        id=current_user.id,
        email=current_user.email,
        role=current_user.role,
        landing=landing_for(current_user.role),
    )

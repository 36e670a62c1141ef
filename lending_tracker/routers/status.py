from fastapi import APIRouter, Depends

from .. import schemas
from ..auth import require_role

router = APIRouter(tags=["status"])


@router.get("/test", response_model=schemas.Message)
async def health_check() -> schemas.Message:
    return schemas.Message(message="Backend is running!")


@router.get("/admin/test", response_model=schemas.Message)
async def admin_check(
    current_user: schemas.TokenData = Depends(require_role(schemas.Role.admin))
) -> schemas.Message:
    return schemas.Message(message=f"Welcome Admin {current_user.username}! This is a protected admin route.")

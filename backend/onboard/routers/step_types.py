"""Step-type catalog (read-only)."""

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from onboard.auth.deps import AuthUser, get_current_user
from onboard.database import get_db
from onboard.models.step_type import StepType
from onboard.schemas.wizard import StepTypeOut

router = APIRouter()


@router.get("/", response_model=list[StepTypeOut])
async def list_step_types(
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    result = await db.execute(select(StepType).order_by(StepType.name))
    return result.scalars().all()

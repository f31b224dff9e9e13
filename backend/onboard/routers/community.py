"""Community-level routes: platform sync, quota usage, quota checks."""

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from onboard.auth.deps import AuthUser, get_current_user, require_admin
from onboard.database import get_db
from onboard.schemas.quota import (
    QuotaCheckRequest,
    QuotaDecisionOut,
    QuotaUsageOut,
    UsageEventOut,
    UsageRecordRequest,
)
from onboard.services import quota
from onboard.services.community import get_community, sync_community


class CommunitySync(BaseModel):
    title: str


class CommunityOut(BaseModel):
    id: str
    title: str
    current_plan_id: int | None

    model_config = {"from_attributes": True}


router = APIRouter()


@router.post("/sync", response_model=CommunityOut)
async def sync(
    body: CommunitySync,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(require_admin),
):
    return await sync_community(db, user.community_id, body.title)


@router.get("/quota-usage", response_model=QuotaUsageOut)
async def quota_usage(
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(require_admin),
):
    return await quota.get_quota_usage(db, user.community_id)


@router.post("/quota-check", response_model=QuotaDecisionOut)
async def quota_check(
    body: QuotaCheckRequest,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    """Read-only decision: would one more use of `feature` be allowed?"""
    await get_community(db, user.community_id)
    decision = await quota.check_quota(
        db, user.community_id, body.feature, requested_plan=body.plan_code
    )
    return QuotaDecisionOut(
        allowed=decision.allowed,
        feature=decision.feature,
        plan_id=decision.plan_id,
        current_usage=decision.current_usage,
        limit=decision.limit,
        window_description=decision.window_description,
    )


@router.post("/usage", response_model=UsageEventOut, status_code=status.HTTP_201_CREATED)
async def record_usage(
    body: UsageRecordRequest,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    """Consume one unit of `feature`; 402 with upgrade details when exhausted."""
    await get_community(db, user.community_id)
    return await quota.record_usage(
        db,
        user.community_id,
        user.user_id,
        body.feature,
        idempotency_key=body.idempotency_key,
    )

"""Admin wizard routes: community-scoped wizard and step management.

Every endpoint requires a community admin token; the community comes from
the token and is passed to the service layer explicitly.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from onboard.auth.deps import AuthUser, require_admin
from onboard.database import get_db
from onboard.schemas.wizard import (
    StepCreate,
    StepOut,
    StepReorderRequest,
    StepUpdate,
    WizardCreate,
    WizardOut,
    WizardUpdate,
)
from onboard.services import wizards as wizard_service

router = APIRouter()


# ── Wizards ─────────────────────────────────────────────────

@router.get("/", response_model=list[WizardOut])
async def list_wizards(
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(require_admin),
):
    return await wizard_service.list_wizards(db, user.community_id)


@router.post("/", response_model=WizardOut, status_code=status.HTTP_201_CREATED)
async def create_wizard(
    body: WizardCreate,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(require_admin),
):
    """Create a wizard. Creating it active counts against active_wizard."""
    return await wizard_service.create_wizard(db, user.community_id, body)


@router.get("/{wizard_id}", response_model=WizardOut)
async def get_wizard(
    wizard_id: str,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(require_admin),
):
    return await wizard_service.get_community_wizard(db, user.community_id, wizard_id)


@router.put("/{wizard_id}", response_model=WizardOut)
async def update_wizard(
    wizard_id: str,
    body: WizardUpdate,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(require_admin),
):
    return await wizard_service.update_wizard(db, user.community_id, wizard_id, body)


@router.delete("/{wizard_id}", response_model=WizardOut)
async def delete_wizard(
    wizard_id: str,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(require_admin),
):
    return await wizard_service.delete_wizard(db, user.community_id, wizard_id)


# ── Steps ───────────────────────────────────────────────────

@router.get("/{wizard_id}/steps", response_model=list[StepOut])
async def list_steps(
    wizard_id: str,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(require_admin),
):
    return await wizard_service.list_steps(db, user.community_id, wizard_id)


@router.post(
    "/{wizard_id}/steps",
    response_model=StepOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_step(
    wizard_id: str,
    body: StepCreate,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(require_admin),
):
    return await wizard_service.add_step(db, user.community_id, wizard_id, body)


# Declared before /{step_id} so "reorder" is not taken for a step id.
@router.put("/{wizard_id}/steps/reorder", response_model=list[StepOut])
async def reorder_steps(
    wizard_id: str,
    body: StepReorderRequest,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(require_admin),
):
    return await wizard_service.reorder_steps(
        db, user.community_id, wizard_id, body.step_ids
    )


@router.put("/{wizard_id}/steps/{step_id}", response_model=StepOut)
async def update_step(
    wizard_id: str,
    step_id: str,
    body: StepUpdate,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(require_admin),
):
    return await wizard_service.update_step(
        db, user.community_id, wizard_id, step_id, body
    )


@router.delete("/{wizard_id}/steps/{step_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_step(
    wizard_id: str,
    step_id: str,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(require_admin),
):
    await wizard_service.delete_step(db, user.community_id, wizard_id, step_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

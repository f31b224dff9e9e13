"""End-user routes: wizard progress and completion, plus linked accounts and roles."""

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from onboard.auth.deps import AuthUser, get_current_user
from onboard.database import get_db
from onboard.schemas.progress import (
    CompletionOut,
    CredentialListOut,
    EarnableRolesOut,
    StepCompleteRequest,
    UserStepOut,
    UserWizardOut,
    WizardCompletionResult,
    WizardSessionOut,
    WizardSessionUpdate,
)
from onboard.services import progression

router = APIRouter()


@router.get("/wizards", response_model=list[UserWizardOut])
async def list_wizards(
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    return await progression.list_user_wizards(db, user.user_id, user.community_id)


@router.get("/wizards/{wizard_id}/steps", response_model=list[UserStepOut])
async def list_steps(
    wizard_id: str,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    return await progression.list_user_steps(
        db, user.user_id, user.community_id, wizard_id
    )


@router.post(
    "/wizards/{wizard_id}/steps/{step_id}/complete",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def complete_step(
    wizard_id: str,
    step_id: str,
    body: StepCompleteRequest | None = None,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    await progression.complete_step(
        db,
        user.user_id,
        user.community_id,
        wizard_id,
        step_id,
        verified_data=body.verified_data if body else None,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/wizards/{wizard_id}/complete", response_model=WizardCompletionResult)
async def complete_wizard(
    wizard_id: str,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    return await progression.complete_wizard(
        db, user.user_id, user.community_id, wizard_id
    )


@router.get("/wizard-completions", response_model=list[CompletionOut])
async def list_completions(
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    return await progression.list_completions(db, user.user_id, user.community_id)


@router.get("/wizards/{wizard_id}/session", response_model=WizardSessionOut)
async def get_session(
    wizard_id: str,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    return await progression.get_wizard_session(
        db, user.user_id, user.community_id, wizard_id
    )


@router.put("/wizards/{wizard_id}/session", response_model=WizardSessionOut)
async def save_session(
    wizard_id: str,
    body: WizardSessionUpdate,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    """Remember the step the user is looking at, for resume."""
    return await progression.save_wizard_session(
        db, user.user_id, user.community_id, wizard_id, body.step_id
    )


@router.get("/credentials", response_model=CredentialListOut)
async def list_credentials(
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    return await progression.list_credentials(db, user.user_id)


@router.get("/earnable-roles", response_model=EarnableRolesOut)
async def list_earnable_roles(
    held: list[str] = Query(default=[]),
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    """Roles still earnable; `held` lists role ids the user already has."""
    return await progression.list_earnable_roles(
        db, user.user_id, user.community_id, held_role_ids=held
    )

"""Admin-side wizard and step management for a single community.

Every function takes the caller's community_id explicitly and only sees
that community's wizards. Activation goes through the active_wizard quota.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from onboard.middleware.exceptions import InvalidRequestError, ResourceNotFoundError
from onboard.models.enums import Feature
from onboard.models.step_type import StepType
from onboard.models.wizard import Step, Wizard
from onboard.schemas.wizard import StepCreate, StepUpdate, WizardCreate, WizardUpdate
from onboard.services.quota import enforce_quota

logger = logging.getLogger(__name__)


# ── Wizards ─────────────────────────────────────────────────

async def get_community_wizard(
    db: AsyncSession, community_id: str, wizard_id: str
) -> Wizard:
    result = await db.execute(
        select(Wizard).where(Wizard.id == wizard_id, Wizard.community_id == community_id)
    )
    wizard = result.scalar_one_or_none()
    if not wizard:
        raise ResourceNotFoundError("Wizard", wizard_id)
    return wizard


async def list_wizards(db: AsyncSession, community_id: str) -> list[Wizard]:
    result = await db.execute(
        select(Wizard)
        .where(Wizard.community_id == community_id)
        .order_by(Wizard.created_at.desc())
    )
    return list(result.scalars().all())


async def create_wizard(
    db: AsyncSession, community_id: str, body: WizardCreate
) -> Wizard:
    if body.is_active:
        await enforce_quota(db, community_id, Feature.ACTIVE_WIZARD)

    wizard = Wizard(
        community_id=community_id,
        name=body.name,
        description=body.description,
        is_active=body.is_active,
        assign_roles_per_step=body.assign_roles_per_step,
    )
    db.add(wizard)
    await db.flush()
    logger.info(f"Wizard {wizard.id} created in community {community_id}")
    return wizard


async def update_wizard(
    db: AsyncSession, community_id: str, wizard_id: str, body: WizardUpdate
) -> Wizard:
    wizard = await get_community_wizard(db, community_id, wizard_id)
    data = body.model_dump(exclude_unset=True)
    if not data:
        raise InvalidRequestError("No fields to update")

    if data.get("is_active") and not wizard.is_active:
        await enforce_quota(db, community_id, Feature.ACTIVE_WIZARD)
        logger.info(f"Activating wizard {wizard.id}")

    for k, v in data.items():
        setattr(wizard, k, v)
    await db.flush()
    return wizard


async def delete_wizard(db: AsyncSession, community_id: str, wizard_id: str) -> Wizard:
    wizard = await get_community_wizard(db, community_id, wizard_id)
    await db.delete(wizard)
    await db.flush()
    logger.info(f"Wizard {wizard_id} deleted from community {community_id}")
    return wizard


# ── Steps ───────────────────────────────────────────────────

async def list_steps(db: AsyncSession, community_id: str, wizard_id: str) -> list[Step]:
    wizard = await get_community_wizard(db, community_id, wizard_id)
    result = await db.execute(
        select(Step).where(Step.wizard_id == wizard.id).order_by(Step.step_order)
    )
    return list(result.scalars().all())


async def _get_wizard_step(
    db: AsyncSession, community_id: str, wizard_id: str, step_id: str
) -> Step:
    await get_community_wizard(db, community_id, wizard_id)
    result = await db.execute(
        select(Step).where(Step.id == step_id, Step.wizard_id == wizard_id)
    )
    step = result.scalar_one_or_none()
    if not step:
        raise ResourceNotFoundError("Step", step_id)
    return step


async def _require_step_type(db: AsyncSession, step_type_id: str) -> StepType:
    step_type = await db.get(StepType, step_type_id)
    if not step_type:
        raise ResourceNotFoundError("Step type", step_type_id)
    return step_type


async def add_step(
    db: AsyncSession, community_id: str, wizard_id: str, body: StepCreate
) -> Step:
    """Append a step after the wizard's current last step."""
    wizard = await get_community_wizard(db, community_id, wizard_id)
    await _require_step_type(db, body.step_type_id)

    max_order = await db.scalar(
        select(func.max(Step.step_order)).where(Step.wizard_id == wizard.id)
    )
    step = Step(
        wizard_id=wizard.id,
        step_type_id=body.step_type_id,
        step_order=0 if max_order is None else max_order + 1,
        config=body.config,
        target_role_id=body.target_role_id,
        is_mandatory=body.is_mandatory,
        is_active=body.is_active,
    )
    db.add(step)
    await db.flush()
    return step


async def update_step(
    db: AsyncSession,
    community_id: str,
    wizard_id: str,
    step_id: str,
    body: StepUpdate,
) -> Step:
    step = await _get_wizard_step(db, community_id, wizard_id, step_id)
    data = body.model_dump(exclude_unset=True)
    if not data:
        raise InvalidRequestError("No fields to update")
    if data.get("step_type_id"):
        await _require_step_type(db, data["step_type_id"])

    for k, v in data.items():
        setattr(step, k, v)
    await db.flush()
    return step


async def delete_step(
    db: AsyncSession, community_id: str, wizard_id: str, step_id: str
) -> None:
    step = await _get_wizard_step(db, community_id, wizard_id, step_id)
    await db.delete(step)
    await db.flush()


async def reorder_steps(
    db: AsyncSession, community_id: str, wizard_id: str, step_ids: list[str]
) -> list[Step]:
    """Set step_order to the position of each id in `step_ids` (0-based).

    `step_ids` must name exactly the wizard's steps. The new orders are
    applied in two flushes inside the caller's transaction: every step is
    first parked on a distinct negative order, then moved to its final
    order. No statement ever produces a duplicate (wizard_id, step_order),
    and a failure rolls back the whole reorder.
    """
    wizard = await get_community_wizard(db, community_id, wizard_id)
    result = await db.execute(select(Step).where(Step.wizard_id == wizard.id))
    steps = {s.id: s for s in result.scalars().all()}

    if len(step_ids) != len(steps):
        raise InvalidRequestError("Step count mismatch", error_code="STEP_COUNT_MISMATCH")
    unknown = [sid for sid in step_ids if sid not in steps]
    if unknown:
        raise InvalidRequestError(
            f"Steps do not belong to wizard {wizard.id}: {', '.join(unknown)}",
            error_code="STEP_NOT_IN_WIZARD",
        )

    for position, step_id in enumerate(step_ids):
        steps[step_id].step_order = -(position + 1)
    await db.flush()

    for position, step_id in enumerate(step_ids):
        steps[step_id].step_order = position
    await db.flush()

    logger.info(f"Reordered {len(step_ids)} steps of wizard {wizard.id}")
    return [steps[sid] for sid in step_ids]

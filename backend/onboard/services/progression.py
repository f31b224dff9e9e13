"""Step progression and wizard completion.

can_proceed() is the whole rule set; everything else here loads rows,
feeds them through it, and persists the outcome.

Decision table for can_proceed (first match wins):
  1. no progress row                        → False
  2. optional step                          → completed_at is set
  3. mandatory, not completed               → False
  4. mandatory, step type not in catalog    → False (fail closed)
  5. mandatory quiz (quizmaster_*)          → verified_data["passed"] is True
  6. mandatory, any other type, completed   → True
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from onboard.middleware.exceptions import (
    InvalidRequestError,
    ResourceNotFoundError,
    StepsIncompleteError,
)
from onboard.models.credential import UserLinkedCredential
from onboard.models.enums import QUIZ_STEP_TYPES, CredentialPlatform
from onboard.models.progress import (
    UserStepProgress,
    UserWizardCompletion,
    UserWizardSession,
)
from onboard.models.step_type import StepType
from onboard.models.wizard import Step, Wizard
from onboard.schemas.progress import (
    CompletionOut,
    CredentialListOut,
    CredentialOut,
    EarnableRoleOut,
    EarnableRolesOut,
    GrantingWizardOut,
    UserStepOut,
    UserWizardOut,
    WizardCompletionResult,
    WizardSessionOut,
    parse_verified_data,
)
from onboard.services.wizards import get_community_wizard
from onboard.utils.timeutils import utcnow
from onboard.utils.upsert import insert_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepDefinition:
    is_mandatory: bool
    # None when the step's type could not be resolved in the catalog
    step_type_name: str | None


# ── Evaluator ───────────────────────────────────────────────

def can_proceed(progress, definition: StepDefinition | None) -> bool:
    """Return True if the user may advance past this step.

    `progress` is a UserStepProgress (or anything with `completed_at` and
    `verified_data`), or None if the step was never attempted. A missing
    `definition` is treated as a mandatory step of unknown type.
    """
    if progress is None:
        return False

    completed = progress.completed_at is not None
    if definition is not None and not definition.is_mandatory:
        return completed

    if not completed:
        return False

    if definition is None or definition.step_type_name is None:
        logger.warning("Unresolved step type for mandatory step; blocking progression")
        return False

    if definition.step_type_name in QUIZ_STEP_TYPES:
        return _quiz_passed(progress.verified_data)

    return True


def _quiz_passed(verified_data) -> bool:
    return isinstance(verified_data, dict) and verified_data.get("passed") is True


def resolve_step_definition(step: Step, catalog: Mapping[str, StepType]) -> StepDefinition:
    step_type = catalog.get(step.step_type_id)
    return StepDefinition(
        is_mandatory=step.is_mandatory,
        step_type_name=step_type.name if step_type else None,
    )


# ── Loaders ─────────────────────────────────────────────────

async def load_step_catalog(db: AsyncSession) -> dict[str, StepType]:
    result = await db.execute(select(StepType))
    return {st.id: st for st in result.scalars().all()}


async def _load_active_steps(db: AsyncSession, wizard_id: str) -> list[Step]:
    result = await db.execute(
        select(Step)
        .where(Step.wizard_id == wizard_id, Step.is_active == True)  # noqa: E712
        .order_by(Step.step_order)
    )
    return list(result.scalars().all())


async def _load_progress(
    db: AsyncSession, user_id: str, wizard_id: str
) -> dict[str, UserStepProgress]:
    # Rows are written by Core upserts, so refresh anything already in the
    # identity map.
    result = await db.execute(
        select(UserStepProgress)
        .where(
            UserStepProgress.user_id == user_id,
            UserStepProgress.wizard_id == wizard_id,
        )
        .execution_options(populate_existing=True)
    )
    return {p.step_id: p for p in result.scalars().all()}


# ── Step completion ─────────────────────────────────────────

def _credential_from(step_type_name: str, data: dict):
    """Map verified_data of a credential step to (platform, external_id, username)."""
    if step_type_name == "ens" and data.get("ensName"):
        return CredentialPlatform.ENS, data["ensName"], data["ensName"]
    if step_type_name == "discord" and data.get("discordId"):
        return CredentialPlatform.DISCORD, data["discordId"], data.get("discordUsername")
    if step_type_name == "telegram" and data.get("telegramId"):
        return CredentialPlatform.TELEGRAM, str(data["telegramId"]), data.get("telegramUsername")
    if step_type_name == "gitcoin_passport" and data.get("passportId"):
        return CredentialPlatform.OTHER, data["passportId"], "Gitcoin Passport"
    return None


async def _link_credential(
    db: AsyncSession, user_id: str, step_type_name: str, data: dict
) -> None:
    credential = _credential_from(step_type_name, data)
    if credential is None:
        logger.warning(f"No credential stored for step type {step_type_name}")
        return

    platform, external_id, username = credential
    now = utcnow()
    stmt = insert_for(db, UserLinkedCredential).values(
        user_id=user_id,
        platform=platform,
        external_id=str(external_id),
        username=username,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "platform"],
        set_={
            "external_id": stmt.excluded.external_id,
            "username": stmt.excluded.username,
            "updated_at": now,
        },
    )
    await db.execute(stmt)
    logger.info(f"Linked {platform.value} credential for user {user_id}")


async def complete_step(
    db: AsyncSession,
    user_id: str,
    community_id: str,
    wizard_id: str,
    step_id: str,
    verified_data: dict | None = None,
) -> None:
    """Record (or re-record) an attempt at a step.

    The progress row is written with one INSERT ... ON CONFLICT DO UPDATE
    keyed on (user_id, wizard_id, step_id): concurrent completions of the
    same step end in a single row, last writer wins.
    """
    row = (
        await db.execute(
            select(Step, StepType)
            .join(Wizard, Step.wizard_id == Wizard.id)
            .join(StepType, Step.step_type_id == StepType.id)
            .where(
                Step.id == step_id,
                Step.wizard_id == wizard_id,
                Wizard.community_id == community_id,
            )
        )
    ).one_or_none()
    if row is None:
        raise ResourceNotFoundError("Step", step_id)
    step, step_type = row

    data = parse_verified_data(step_type.name, verified_data)

    now = utcnow()
    stmt = insert_for(db, UserStepProgress).values(
        user_id=user_id,
        wizard_id=wizard_id,
        step_id=step_id,
        verified_data=data,
        completed_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "wizard_id", "step_id"],
        set_={
            "completed_at": now,
            "verified_data": stmt.excluded.verified_data,
        },
    )
    await db.execute(stmt)

    if step_type.requires_credentials and data:
        await _link_credential(db, user_id, step_type.name, data)

    logger.info(f"User {user_id} completed step {step_id} of wizard {wizard_id}")


async def list_user_steps(
    db: AsyncSession, user_id: str, community_id: str, wizard_id: str
) -> list[UserStepOut]:
    """Active steps of a wizard in order, each with the user's progress."""
    wizard = await get_community_wizard(db, community_id, wizard_id)
    steps = await _load_active_steps(db, wizard.id)
    catalog = await load_step_catalog(db)
    progress = await _load_progress(db, user_id, wizard.id)

    out = []
    for step in steps:
        p = progress.get(step.id)
        definition = resolve_step_definition(step, catalog)
        out.append(UserStepOut(
            id=step.id,
            wizard_id=step.wizard_id,
            step_type_id=step.step_type_id,
            step_type_name=definition.step_type_name,
            step_order=step.step_order,
            config=step.config or {},
            target_role_id=step.target_role_id,
            is_mandatory=step.is_mandatory,
            completed_at=p.completed_at if p else None,
            verified_data=p.verified_data if p else None,
            can_proceed=can_proceed(p, definition),
        ))
    return out


# ── Wizard completion ───────────────────────────────────────

async def complete_wizard(
    db: AsyncSession, user_id: str, community_id: str, wizard_id: str
) -> WizardCompletionResult:
    """Mark a wizard complete if every active mandatory step passes.

    Raises StepsIncompleteError (listing exactly the failing step ids)
    without writing anything otherwise. Returns the deduplicated role ids
    granted by the passed steps.
    """
    wizard = await get_community_wizard(db, community_id, wizard_id)
    steps = await _load_active_steps(db, wizard.id)
    catalog = await load_step_catalog(db)
    progress = await _load_progress(db, user_id, wizard.id)

    failing: list[str] = []
    roles: set[str] = set()
    for step in steps:
        passed = can_proceed(progress.get(step.id), resolve_step_definition(step, catalog))
        if step.is_mandatory and not passed:
            failing.append(step.id)
        elif passed and step.target_role_id:
            roles.add(step.target_role_id)

    if failing:
        logger.info(
            f"Wizard {wizard.id} not completable for user {user_id}: "
            f"{len(failing)} step(s) incomplete"
        )
        raise StepsIncompleteError(wizard.id, failing)

    now = utcnow()
    stmt = insert_for(db, UserWizardCompletion).values(
        user_id=user_id,
        wizard_id=wizard.id,
        completed_at=now,
        version=1,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "wizard_id"],
        set_={
            "completed_at": now,
            "version": UserWizardCompletion.version + 1,
        },
    )
    await db.execute(stmt)

    completion = (
        await db.execute(
            select(UserWizardCompletion)
            .where(
                UserWizardCompletion.user_id == user_id,
                UserWizardCompletion.wizard_id == wizard.id,
            )
            .execution_options(populate_existing=True)
        )
    ).scalar_one()

    logger.info(
        f"User {user_id} completed wizard {wizard.id} (version {completion.version})"
    )
    return WizardCompletionResult(
        wizard_id=wizard.id,
        version=completion.version,
        roles=sorted(roles),
    )


async def list_completions(
    db: AsyncSession, user_id: str, community_id: str
) -> list[CompletionOut]:
    result = await db.execute(
        select(UserWizardCompletion)
        .join(Wizard, UserWizardCompletion.wizard_id == Wizard.id)
        .where(
            UserWizardCompletion.user_id == user_id,
            Wizard.community_id == community_id,
        )
        .order_by(UserWizardCompletion.completed_at.desc())
        .execution_options(populate_existing=True)
    )
    return [CompletionOut.model_validate(c) for c in result.scalars().all()]


async def list_user_wizards(
    db: AsyncSession, user_id: str, community_id: str
) -> list[UserWizardOut]:
    """Active wizards of the community, flagged with the user's completion."""
    wizards = (
        await db.execute(
            select(Wizard)
            .where(Wizard.community_id == community_id, Wizard.is_active == True)  # noqa: E712
            .order_by(Wizard.created_at)
        )
    ).scalars().all()
    completed = set(
        (
            await db.execute(
                select(UserWizardCompletion.wizard_id).where(
                    UserWizardCompletion.user_id == user_id
                )
            )
        ).scalars().all()
    )
    return [
        UserWizardOut(
            id=w.id,
            name=w.name,
            description=w.description,
            is_completed=w.id in completed,
        )
        for w in wizards
    ]


# ── Session resume ──────────────────────────────────────────

async def get_wizard_session(
    db: AsyncSession, user_id: str, community_id: str, wizard_id: str
) -> WizardSessionOut:
    """Last step the user viewed in this wizard, or None if never opened."""
    wizard = await get_community_wizard(db, community_id, wizard_id)
    step_id = await db.scalar(
        select(UserWizardSession.last_viewed_step_id).where(
            UserWizardSession.user_id == user_id,
            UserWizardSession.wizard_id == wizard.id,
        )
    )
    return WizardSessionOut(wizard_id=wizard.id, last_viewed_step_id=step_id)


async def save_wizard_session(
    db: AsyncSession, user_id: str, community_id: str, wizard_id: str, step_id: str
) -> WizardSessionOut:
    wizard = await get_community_wizard(db, community_id, wizard_id)
    exists = await db.scalar(
        select(Step.id).where(Step.id == step_id, Step.wizard_id == wizard.id)
    )
    if exists is None:
        raise InvalidRequestError(
            f"Step {step_id} does not belong to wizard {wizard.id}",
            error_code="STEP_NOT_IN_WIZARD",
        )

    now = utcnow()
    stmt = insert_for(db, UserWizardSession).values(
        user_id=user_id,
        wizard_id=wizard.id,
        last_viewed_step_id=step_id,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "wizard_id"],
        set_={
            "last_viewed_step_id": stmt.excluded.last_viewed_step_id,
            "updated_at": now,
        },
    )
    await db.execute(stmt)
    return WizardSessionOut(wizard_id=wizard.id, last_viewed_step_id=step_id)


# ── Linked credentials ──────────────────────────────────────

async def list_credentials(db: AsyncSession, user_id: str) -> CredentialListOut:
    result = await db.execute(
        select(UserLinkedCredential)
        .where(UserLinkedCredential.user_id == user_id)
        .order_by(UserLinkedCredential.updated_at.desc())
        .execution_options(populate_existing=True)
    )
    return CredentialListOut(
        credentials=[CredentialOut.model_validate(c) for c in result.scalars().all()]
    )


# ── Earnable roles ──────────────────────────────────────────

async def list_earnable_roles(
    db: AsyncSession,
    user_id: str,
    community_id: str,
    held_role_ids: Iterable[str] = (),
) -> EarnableRolesOut:
    """Roles the user can still earn, each with the wizards that grant it.

    Only active steps of active wizards the user has not completed count.
    Role membership lives on the hosting platform, so roles the user
    already holds are passed in by the caller and skipped.
    """
    held = set(held_role_ids)
    completed = select(UserWizardCompletion.wizard_id).where(
        UserWizardCompletion.user_id == user_id
    )
    result = await db.execute(
        select(Step.target_role_id, Wizard.id, Wizard.name)
        .join(Wizard, Step.wizard_id == Wizard.id)
        .where(
            Wizard.community_id == community_id,
            Wizard.is_active == True,  # noqa: E712
            Wizard.id.not_in(completed),
            Step.is_active == True,  # noqa: E712
            Step.target_role_id.is_not(None),
        )
        .order_by(Step.target_role_id, Wizard.name)
    )

    granting: dict[str, dict[str, str]] = {}
    for role_id, wizard_id, wizard_name in result.all():
        if role_id in held:
            continue
        granting.setdefault(role_id, {})[wizard_id] = wizard_name

    return EarnableRolesOut(
        earnable_roles=[
            EarnableRoleOut(
                role_id=role_id,
                granting_wizards=[
                    GrantingWizardOut(wizard_id=wid, wizard_name=name)
                    for wid, name in wizards.items()
                ],
            )
            for role_id, wizards in granting.items()
        ]
    )

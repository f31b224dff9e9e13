"""Plan entitlements and quota enforcement.

check_quota() is the read-only decision:

  1. Resolve the plan: explicit requested plan → community.current_plan_id
     → settings.default_plan_code. Inactive plans contribute no limits.
  2. Load the plan_limits rows for (plan, feature).
       - no rows: per-feature default. Features listed in
         settings.quota_fail_closed_features (active_wizard by default)
         get hard_limit 0; every other feature is unlimited.
       - time_window == 0: count ceiling, measured by a resource counter
         (active_wizard → active wizards of the community). Features with
         no counter are measured as their all-time usage_events count.
       - time_window > 0: usage_events since now - time_window.
  3. allowed = usage < hard_limit, for every window of the feature.

The missing-row asymmetry (wizard count fails closed, rate features fail
open) is kept as configured rather than unified.

enforce_quota() / record_usage() are the write path: the community row is
locked (SELECT ... FOR UPDATE) before counting, so a check and the write it
gates serialize against other requests for the same community inside one
transaction. Two requests can no longer both see usage = limit - 1.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from onboard.config import settings
from onboard.middleware.exceptions import (
    ConflictError,
    QuotaExceededError,
    ResourceNotFoundError,
)
from onboard.models.billing import Plan, PlanLimit, UsageEvent
from onboard.models.community import Community
from onboard.models.enums import Feature
from onboard.models.wizard import Wizard
from onboard.schemas.quota import (
    FeatureUsageOut,
    PlanLimitOut,
    PlanOut,
    QuotaUsageOut,
)
from onboard.utils.timeutils import describe_window, utcnow

logger = logging.getLogger(__name__)

# Shown on the usage report / upgrade prompt
REPORTED_FEATURES = (
    Feature.ACTIVE_WIZARD,
    Feature.IMAGE_GENERATION,
    Feature.AI_CHAT_MESSAGE,
)


@dataclass
class QuotaDecision:
    allowed: bool
    feature: Feature
    plan_id: int | None
    current_usage: int
    limit: int | None
    window_description: str

    def to_error(self) -> QuotaExceededError:
        return QuotaExceededError(
            feature=self.feature.value,
            # None only for fail-open decisions, which are never denials
            limit=self.limit,
            current_usage=self.current_usage,
            plan_id=self.plan_id,
            window=self.window_description,
        )


# ── Usage measurement ───────────────────────────────────────

async def _count_active_wizards(db: AsyncSession, community_id: str) -> int:
    result = await db.execute(
        select(func.count(Wizard.id)).where(
            Wizard.community_id == community_id,
            Wizard.is_active == True,  # noqa: E712
        )
    )
    return int(result.scalar() or 0)


RESOURCE_COUNTERS: dict[Feature, Callable[[AsyncSession, str], Awaitable[int]]] = {
    Feature.ACTIVE_WIZARD: _count_active_wizards,
}


async def _count_events(
    db: AsyncSession,
    community_id: str,
    feature: Feature,
    since: datetime | None,
) -> int:
    stmt = select(func.count(UsageEvent.id)).where(
        UsageEvent.community_id == community_id,
        UsageEvent.feature == feature,
    )
    if since is not None:
        stmt = stmt.where(UsageEvent.occurred_at >= since)
    return int((await db.execute(stmt)).scalar() or 0)


async def measure_usage(
    db: AsyncSession,
    community_id: str,
    limit: PlanLimit,
    now: datetime | None = None,
) -> int:
    """Current usage of the limit's feature, measured over its window."""
    if limit.is_count_ceiling:
        counter = RESOURCE_COUNTERS.get(limit.feature)
        if counter is not None:
            return await counter(db, community_id)
        return await _count_events(db, community_id, limit.feature, since=None)
    now = now or utcnow()
    return await _count_events(
        db, community_id, limit.feature, since=now - limit.time_window
    )


# ── Plan resolution ─────────────────────────────────────────

def is_fail_closed(feature: Feature) -> bool:
    return feature.value in settings.quota_fail_closed_features


async def get_plan(db: AsyncSession, plan: int | str) -> Plan | None:
    """Look a plan up by id or code."""
    if isinstance(plan, int):
        return await db.get(Plan, plan)
    result = await db.execute(select(Plan).where(Plan.code == plan))
    return result.scalar_one_or_none()


async def resolve_plan(
    db: AsyncSession,
    community: Community,
    requested_plan: int | str | None = None,
) -> Plan | None:
    if requested_plan is not None:
        return await get_plan(db, requested_plan)
    if community.current_plan_id is not None:
        return await db.get(Plan, community.current_plan_id)
    return await get_plan(db, settings.default_plan_code)


# ── Decision ────────────────────────────────────────────────

async def check_quota(
    db: AsyncSession,
    community_id: str,
    feature: Feature,
    requested_plan: int | str | None = None,
    now: datetime | None = None,
) -> QuotaDecision:
    """Decide whether one more `feature` event fits the community's plan.

    Never raises for missing rows: an unknown community or an unknown
    requested plan yields a denial.
    """
    community = await db.get(Community, community_id)
    if community is None:
        logger.warning(f"Quota check for unknown community {community_id}; denying")
        return QuotaDecision(False, feature, None, 0, 0, "static")

    plan = await resolve_plan(db, community, requested_plan)
    if plan is None and requested_plan is not None:
        logger.warning(f"Quota check against unknown plan {requested_plan!r}; denying")
        return QuotaDecision(False, feature, None, 0, 0, "static")

    plan_id = plan.id if plan else None
    rows: list[PlanLimit] = []
    if plan is not None and plan.is_active:
        result = await db.execute(
            select(PlanLimit)
            .where(PlanLimit.plan_id == plan.id, PlanLimit.feature == feature)
            .order_by(PlanLimit.time_window)
        )
        rows = list(result.scalars().all())

    if not rows:
        return await _default_decision(db, community_id, feature, plan_id)

    now = now or utcnow()
    evaluated = []
    for row in rows:
        usage = await measure_usage(db, community_id, row, now)
        evaluated.append((row, usage))

    exhausted = [(row, usage) for row, usage in evaluated if usage >= row.hard_limit]
    if exhausted:
        row, usage = exhausted[0]
    else:
        row, usage = min(evaluated, key=lambda e: e[0].hard_limit - e[1])

    return QuotaDecision(
        allowed=not exhausted,
        feature=feature,
        plan_id=plan_id,
        current_usage=usage,
        limit=int(row.hard_limit),
        window_description=describe_window(row.time_window),
    )


async def _default_decision(
    db: AsyncSession,
    community_id: str,
    feature: Feature,
    plan_id: int | None,
) -> QuotaDecision:
    counter = RESOURCE_COUNTERS.get(feature)
    usage = await counter(db, community_id) if counter else 0

    if is_fail_closed(feature):
        logger.warning(
            f"No limit configured for {feature.value} on plan {plan_id}; "
            f"defaulting to 0 (fail closed)"
        )
        return QuotaDecision(False, feature, plan_id, usage, 0, "static")

    logger.debug(f"No limit configured for {feature.value} on plan {plan_id}; unlimited")
    return QuotaDecision(True, feature, plan_id, usage, None, describe_window(None))


# ── Enforcement (check + write in one transaction) ──────────

async def lock_community(db: AsyncSession, community_id: str) -> None:
    """Row-lock the community until the surrounding transaction ends."""
    await db.execute(
        select(Community.id).where(Community.id == community_id).with_for_update()
    )


async def enforce_quota(
    db: AsyncSession,
    community_id: str,
    feature: Feature,
    now: datetime | None = None,
) -> QuotaDecision:
    """Lock, check, and raise QuotaExceededError on denial.

    The caller performs the gated write in the same session/transaction.
    """
    await lock_community(db, community_id)
    decision = await check_quota(db, community_id, feature, now=now)
    if not decision.allowed:
        logger.warning(
            f"Quota exceeded for community {community_id}: {feature.value} "
            f"{decision.current_usage}/{decision.limit} ({decision.window_description})"
        )
        raise decision.to_error()
    return decision


async def record_usage(
    db: AsyncSession,
    community_id: str,
    user_id: str,
    feature: Feature,
    idempotency_key: str | None = None,
    now: datetime | None = None,
) -> UsageEvent:
    """Consume one unit of a rate-limited feature.

    A replayed idempotency key returns the original event and consumes
    nothing. Keys are global: a key already used by another community or
    for another feature raises ConflictError.
    """
    await lock_community(db, community_id)

    if idempotency_key:
        existing = (
            await db.execute(
                select(UsageEvent).where(UsageEvent.idempotency_key == idempotency_key)
            )
        ).scalar_one_or_none()
        if existing is not None:
            if existing.community_id != community_id or existing.feature != feature:
                logger.warning(
                    f"Idempotency key reused by community {community_id} "
                    f"for {feature.value}; rejecting"
                )
                raise ConflictError(
                    "Idempotency key already used for a different request",
                    error_code="IDEMPOTENCY_KEY_CONFLICT",
                )
            return existing

    now = now or utcnow()
    await enforce_quota(db, community_id, feature, now=now)

    event = UsageEvent(
        community_id=community_id,
        user_id=user_id,
        feature=feature,
        occurred_at=now,
        idempotency_key=idempotency_key,
    )
    db.add(event)
    await db.flush()
    logger.info(f"Usage event logged for community {community_id}, feature {feature.value}")
    return event


# ── Reporting ───────────────────────────────────────────────

async def get_quota_usage(db: AsyncSession, community_id: str) -> QuotaUsageOut:
    """Current usage per reported feature plus the active plan catalog."""
    community = await db.get(Community, community_id)
    if community is None:
        raise ResourceNotFoundError("Community", community_id)

    plan = await resolve_plan(db, community)

    usage = []
    for feature in REPORTED_FEATURES:
        decision = await check_quota(db, community_id, feature)
        usage.append(FeatureUsageOut(
            feature=feature,
            current_usage=decision.current_usage,
            limit=decision.limit,
            window_description=decision.window_description,
        ))

    result = await db.execute(
        select(Plan)
        .where(Plan.is_active == True)  # noqa: E712
        .options(selectinload(Plan.limits))
        .order_by(Plan.price_cents)
    )
    plans = [
        PlanOut(
            id=p.id,
            code=p.code,
            name=p.name,
            price_cents=p.price_cents,
            limits=[
                PlanLimitOut(
                    feature=limit.feature,
                    window=describe_window(limit.time_window),
                    hard_limit=int(limit.hard_limit),
                )
                for limit in sorted(p.limits, key=lambda lim: (lim.feature.value, lim.time_window))
            ],
        )
        for p in result.scalars().all()
    ]

    return QuotaUsageOut(
        current_plan_id=plan.id if plan else None,
        usage=usage,
        plans=plans,
    )

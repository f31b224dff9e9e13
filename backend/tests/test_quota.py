"""Quota checker: plan resolution, windows, defaults, and enforcement."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from onboard.middleware.exceptions import (
    ConflictError,
    QuotaExceededError,
    ResourceNotFoundError,
)
from onboard.models.billing import Plan, PlanLimit, UsageEvent
from onboard.models.community import Community
from onboard.models.enums import Feature
from onboard.services.quota import (
    QuotaDecision,
    check_quota,
    enforce_quota,
    get_quota_usage,
    measure_usage,
    record_usage,
)
from onboard.utils.timeutils import describe_window, utcnow

from tests.conftest import COMMUNITY_ID, OTHER_COMMUNITY_ID, USER_ID


async def add_events(db: AsyncSession, feature: Feature, n: int, age=timedelta(0)):
    when = utcnow() - age
    for _ in range(n):
        db.add(UsageEvent(
            community_id=COMMUNITY_ID,
            user_id=USER_ID,
            feature=feature,
            occurred_at=when,
        ))
    await db.flush()


async def event_count(db: AsyncSession, feature: Feature) -> int:
    return await db.scalar(
        select(func.count(UsageEvent.id)).where(UsageEvent.feature == feature)
    )


async def assign_plan(db: AsyncSession, plan: Plan) -> None:
    community = await db.get(Community, COMMUNITY_ID)
    community.current_plan_id = plan.id
    await db.flush()


@pytest.mark.unit
class TestDescribeWindow:

    @pytest.mark.parametrize("window,expected", [
        (None, "unlimited"),
        (timedelta(0), "static"),
        (timedelta(days=1), "1 day"),
        (timedelta(days=30), "30 days"),
        (timedelta(hours=1), "1 hour"),
        (timedelta(minutes=90), "90 minutes"),
        (timedelta(seconds=45), "45 seconds"),
    ])
    def test_describe(self, window, expected):
        assert describe_window(window) == expected


@pytest.mark.integration
@pytest.mark.asyncio
class TestRateLimits:

    async def test_below_limit_is_allowed(self, db_session: AsyncSession, plans):
        await add_events(db_session, Feature.IMAGE_GENERATION, 4)

        decision = await check_quota(db_session, COMMUNITY_ID, Feature.IMAGE_GENERATION)

        assert decision.allowed is True
        assert decision.current_usage == 4
        assert decision.limit == 5
        assert decision.window_description == "30 days"
        assert decision.plan_id == plans["free"].id

    async def test_free_plan_image_generation_exhausted(
        self, db_session: AsyncSession, plans
    ):
        await add_events(db_session, Feature.IMAGE_GENERATION, 5)

        decision = await check_quota(db_session, COMMUNITY_ID, Feature.IMAGE_GENERATION)
        assert decision.allowed is False

        error = decision.to_error()
        assert error.status_code == 402
        assert error.details["feature"] == "image_generation"
        assert error.details["limit"] == 5
        assert error.details["currentUsage"] == 5
        assert error.details["planId"] == plans["free"].id

    async def test_events_outside_window_do_not_count(self, db_session: AsyncSession):
        await add_events(db_session, Feature.IMAGE_GENERATION, 5, age=timedelta(days=31))
        await add_events(db_session, Feature.IMAGE_GENERATION, 1)

        decision = await check_quota(db_session, COMMUNITY_ID, Feature.IMAGE_GENERATION)

        assert decision.allowed is True
        assert decision.current_usage == 1

    async def test_events_of_other_features_do_not_count(self, db_session: AsyncSession):
        await add_events(db_session, Feature.AI_CHAT_MESSAGE, 20)

        decision = await check_quota(db_session, COMMUNITY_ID, Feature.IMAGE_GENERATION)

        assert decision.allowed is True
        assert decision.current_usage == 0

    async def test_every_window_is_enforced(self, db_session: AsyncSession, plans):
        db_session.add(PlanLimit(
            plan_id=plans["free"].id,
            feature=Feature.AI_CHAT_MESSAGE,
            time_window=timedelta(hours=1),
            hard_limit=2,
        ))
        await add_events(db_session, Feature.AI_CHAT_MESSAGE, 2)

        decision = await check_quota(db_session, COMMUNITY_ID, Feature.AI_CHAT_MESSAGE)

        assert decision.allowed is False
        assert decision.limit == 2
        assert decision.window_description == "1 hour"

    async def test_current_plan_is_used(self, db_session: AsyncSession, plans):
        await assign_plan(db_session, plans["pro"])
        await add_events(db_session, Feature.IMAGE_GENERATION, 5)

        decision = await check_quota(db_session, COMMUNITY_ID, Feature.IMAGE_GENERATION)

        assert decision.allowed is True
        assert decision.limit == 100
        assert decision.plan_id == plans["pro"].id

    async def test_requested_plan_overrides_current(self, db_session: AsyncSession, plans):
        await add_events(db_session, Feature.IMAGE_GENERATION, 5)

        decision = await check_quota(
            db_session, COMMUNITY_ID, Feature.IMAGE_GENERATION, requested_plan="premium"
        )

        assert decision.allowed is True
        assert decision.limit == 500
        assert decision.plan_id == plans["premium"].id

    async def test_unknown_plan_or_community_is_denied(self, db_session: AsyncSession):
        by_plan = await check_quota(
            db_session, COMMUNITY_ID, Feature.IMAGE_GENERATION, requested_plan="enterprise"
        )
        by_community = await check_quota(db_session, "no-such-community", Feature.IMAGE_GENERATION)

        assert by_plan.allowed is False
        assert by_community.allowed is False
        assert by_community.limit == 0


@pytest.mark.integration
@pytest.mark.asyncio
class TestDefaults:

    async def test_missing_rate_limit_fails_open(self, db_session: AsyncSession):
        decision = await check_quota(
            db_session, COMMUNITY_ID, Feature.WIZARD_STEP_COMPLETION
        )

        assert decision.allowed is True
        assert decision.limit is None
        assert decision.window_description == "unlimited"

    async def test_denial_without_limit_reports_no_limit(self):
        decision = QuotaDecision(
            allowed=False,
            feature=Feature.API_CALL_GENERIC,
            plan_id=None,
            current_usage=7,
            limit=None,
            window_description="unlimited",
        )

        error = decision.to_error()

        assert error.details["limit"] is None
        assert error.details["currentUsage"] == 7

    async def test_missing_wizard_limit_fails_closed(self, db_session: AsyncSession):
        bare = Plan(code="bare", name="No Limits Configured", price_cents=0)
        db_session.add(bare)
        await db_session.flush()
        await assign_plan(db_session, bare)

        decision = await check_quota(db_session, COMMUNITY_ID, Feature.ACTIVE_WIZARD)

        assert decision.allowed is False
        assert decision.limit == 0
        assert decision.window_description == "static"

    async def test_inactive_plan_contributes_no_limits(
        self, db_session: AsyncSession, plans
    ):
        plans["premium"].is_active = False
        await assign_plan(db_session, plans["premium"])

        wizards = await check_quota(db_session, COMMUNITY_ID, Feature.ACTIVE_WIZARD)
        images = await check_quota(db_session, COMMUNITY_ID, Feature.IMAGE_GENERATION)

        assert wizards.allowed is False
        assert images.allowed is True
        assert images.limit is None


@pytest.mark.integration
@pytest.mark.asyncio
class TestActiveWizardCeiling:

    async def test_counts_only_active_wizards(self, db_session: AsyncSession, make_wizard):
        await make_wizard([], name="A")
        await make_wizard([], name="B")
        await make_wizard([], name="Draft", is_active=False)

        decision = await check_quota(db_session, COMMUNITY_ID, Feature.ACTIVE_WIZARD)

        assert decision.allowed is True
        assert decision.current_usage == 2
        assert decision.limit == 3
        assert decision.window_description == "static"

    async def test_count_ceiling_rows(self, db_session: AsyncSession, plans):
        result = await db_session.execute(
            select(PlanLimit).where(PlanLimit.plan_id == plans["free"].id)
        )
        ceilings = {row.feature: row.is_count_ceiling for row in result.scalars().all()}

        assert ceilings[Feature.ACTIVE_WIZARD] is True
        assert ceilings[Feature.IMAGE_GENERATION] is False

    async def test_ceiling_without_counter_counts_all_events(
        self, db_session: AsyncSession
    ):
        await add_events(db_session, Feature.API_CALL_GENERIC, 2, age=timedelta(days=400))
        await add_events(db_session, Feature.API_CALL_GENERIC, 1)
        ceiling = PlanLimit(
            feature=Feature.API_CALL_GENERIC, time_window=timedelta(0), hard_limit=10
        )

        assert await measure_usage(db_session, COMMUNITY_ID, ceiling) == 3

    async def test_limit_reached(self, db_session: AsyncSession, make_wizard):
        for name in ("A", "B", "C"):
            await make_wizard([], name=name)

        with pytest.raises(QuotaExceededError) as exc_info:
            await enforce_quota(db_session, COMMUNITY_ID, Feature.ACTIVE_WIZARD)

        assert exc_info.value.details["currentUsage"] == 3
        assert exc_info.value.details["window"] == "static"


@pytest.mark.integration
@pytest.mark.asyncio
class TestRecordUsage:

    async def test_records_until_limit(self, db_session: AsyncSession):
        for _ in range(5):
            await record_usage(db_session, COMMUNITY_ID, USER_ID, Feature.IMAGE_GENERATION)

        with pytest.raises(QuotaExceededError):
            await record_usage(db_session, COMMUNITY_ID, USER_ID, Feature.IMAGE_GENERATION)

        assert await event_count(db_session, Feature.IMAGE_GENERATION) == 5

    async def test_idempotency_key_replay(self, db_session: AsyncSession):
        first = await record_usage(
            db_session, COMMUNITY_ID, USER_ID, Feature.AI_CHAT_MESSAGE,
            idempotency_key="msg-1",
        )
        second = await record_usage(
            db_session, COMMUNITY_ID, USER_ID, Feature.AI_CHAT_MESSAGE,
            idempotency_key="msg-1",
        )

        assert first.id == second.id
        assert await event_count(db_session, Feature.AI_CHAT_MESSAGE) == 1

    async def test_idempotency_key_of_other_community_conflicts(
        self, db_session: AsyncSession
    ):
        await record_usage(
            db_session, COMMUNITY_ID, "user-a", Feature.AI_CHAT_MESSAGE,
            idempotency_key="k1",
        )

        with pytest.raises(ConflictError) as exc_info:
            await record_usage(
                db_session, OTHER_COMMUNITY_ID, "user-b", Feature.IMAGE_GENERATION,
                idempotency_key="k1",
            )

        assert exc_info.value.status_code == 409
        assert exc_info.value.error_code == "IDEMPOTENCY_KEY_CONFLICT"
        assert await event_count(db_session, Feature.IMAGE_GENERATION) == 0

    async def test_idempotency_key_of_other_feature_conflicts(
        self, db_session: AsyncSession
    ):
        await record_usage(
            db_session, COMMUNITY_ID, USER_ID, Feature.AI_CHAT_MESSAGE,
            idempotency_key="k2",
        )

        with pytest.raises(ConflictError):
            await record_usage(
                db_session, COMMUNITY_ID, USER_ID, Feature.IMAGE_GENERATION,
                idempotency_key="k2",
            )

    async def test_replay_returns_own_event_only(self, db_session: AsyncSession):
        await record_usage(
            db_session, COMMUNITY_ID, "user-a", Feature.AI_CHAT_MESSAGE,
            idempotency_key="k3",
        )

        replay = await record_usage(
            db_session, COMMUNITY_ID, "user-a", Feature.AI_CHAT_MESSAGE,
            idempotency_key="k3",
        )

        assert replay.community_id == COMMUNITY_ID
        assert replay.feature == Feature.AI_CHAT_MESSAGE


@pytest.mark.integration
@pytest.mark.asyncio
class TestQuotaUsageReport:

    async def test_report(self, db_session: AsyncSession, make_wizard, plans):
        await make_wizard([], name="A")
        await add_events(db_session, Feature.IMAGE_GENERATION, 2)

        report = await get_quota_usage(db_session, COMMUNITY_ID)

        assert report.current_plan_id == plans["free"].id
        usage = {u.feature: u for u in report.usage}
        assert usage[Feature.ACTIVE_WIZARD].current_usage == 1
        assert usage[Feature.IMAGE_GENERATION].current_usage == 2
        assert usage[Feature.IMAGE_GENERATION].limit == 5
        assert [p.code for p in report.plans] == ["free", "pro", "premium"]
        assert len(report.plans[0].limits) == 3

    async def test_unknown_community(self, db_session: AsyncSession):
        with pytest.raises(ResourceNotFoundError):
            await get_quota_usage(db_session, "no-such-community")

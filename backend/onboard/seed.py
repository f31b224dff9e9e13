"""Reference data: the plan catalog and the step-type catalog.

seed_reference_data() is idempotent; existing rows are left untouched.
"""

import logging
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from onboard.models.billing import Plan, PlanLimit
from onboard.models.enums import Feature
from onboard.models.step_type import StepType
from onboard.utils.upsert import insert_for

logger = logging.getLogger(__name__)

STATIC = timedelta(0)
ONE_DAY = timedelta(days=1)
THIRTY_DAYS = timedelta(days=30)

# (code, name, price_cents)
PLANS = [
    ("free", "Free Tier", 0),
    ("pro", "Pro Tier", 1000),
    ("premium", "Premium Tier", 2500),
]

# {plan_code: [(feature, time_window, hard_limit), ...]}
PLAN_LIMITS: dict[str, list[tuple[Feature, timedelta, int]]] = {
    "free": [
        (Feature.ACTIVE_WIZARD, STATIC, 3),
        (Feature.IMAGE_GENERATION, THIRTY_DAYS, 5),
        (Feature.AI_CHAT_MESSAGE, ONE_DAY, 20),
    ],
    "pro": [
        (Feature.ACTIVE_WIZARD, STATIC, 10),
        (Feature.IMAGE_GENERATION, THIRTY_DAYS, 100),
        (Feature.AI_CHAT_MESSAGE, ONE_DAY, 200),
    ],
    "premium": [
        (Feature.ACTIVE_WIZARD, STATIC, 25),
        (Feature.IMAGE_GENERATION, THIRTY_DAYS, 500),
        (Feature.AI_CHAT_MESSAGE, ONE_DAY, 1000),
    ],
}

# (name, label, requires_credentials, description)
STEP_TYPES = [
    ("discord", "Discord", True, "Verify Discord server membership or roles"),
    ("telegram", "Telegram", True, "Verify Telegram group membership"),
    ("guild", "Guild", False, "Verify Guild.xyz membership criteria"),
    ("ens", "ENS", True, "Verify ENS domain ownership or primary name"),
    ("efp", "EFP", False, "Verify following an Ethereum address via EFP"),
    ("gitcoin_passport", "Gitcoin Passport", True, "Verify Gitcoin Passport score or stamps"),
    ("content", "Content", False, "Display information to the user"),
    ("quizmaster_basic", "Quizmaster Basic", False, "Multiple-choice quiz with a pass mark"),
    ("quizmaster_ai", "Quizmaster AI", False, "Conversational quiz graded by an AI agent"),
    ("lukso_connect_profile", "LUKSO Profile", False, "Connect a LUKSO Universal Profile"),
    ("animated_text", "Animated Text", False, "Animated text presentation"),
]


async def seed_reference_data(db: AsyncSession) -> None:
    for code, name, price_cents in PLANS:
        stmt = insert_for(db, Plan).values(
            code=code, name=name, price_cents=price_cents, is_active=True
        )
        await db.execute(stmt.on_conflict_do_nothing(index_elements=["code"]))

    result = await db.execute(select(Plan.code, Plan.id))
    plan_ids = {code: plan_id for code, plan_id in result.all()}

    for code, limits in PLAN_LIMITS.items():
        for feature, window, hard_limit in limits:
            stmt = insert_for(db, PlanLimit).values(
                plan_id=plan_ids[code],
                feature=feature,
                time_window=window,
                hard_limit=hard_limit,
            )
            await db.execute(stmt.on_conflict_do_nothing(
                index_elements=["plan_id", "feature", "time_window"]
            ))

    existing = set((await db.execute(select(StepType.name))).scalars().all())
    for name, label, requires_credentials, description in STEP_TYPES:
        if name in existing:
            continue
        db.add(StepType(
            name=name,
            label=label,
            requires_credentials=requires_credentials,
            description=description,
        ))
    await db.flush()
    logger.info(f"Seeded {len(PLANS)} plans and {len(STEP_TYPES)} step types")

"""Management CLI.

Usage:
    python -m onboard.cli seed          # Insert plans, plan limits, step types
    python -m onboard.cli list-plans    # Show plans and their limits
"""

import asyncio
import sys

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from onboard.database import async_session, engine
from onboard.models.billing import Plan
from onboard.seed import seed_reference_data
from onboard.utils.timeutils import describe_window


async def seed():
    async with async_session() as session:
        await seed_reference_data(session)
        await session.commit()
    await engine.dispose()
    print("Reference data seeded.")


async def list_plans():
    async with async_session() as session:
        result = await session.execute(
            select(Plan).options(selectinload(Plan.limits)).order_by(Plan.price_cents)
        )
        plans = result.scalars().all()
        for plan in plans:
            status = "" if plan.is_active else " (inactive)"
            print(f"  [{plan.id}] {plan.code} - {plan.name}{status}")
            for limit in plan.limits:
                print(
                    f"      {limit.feature.value}: {limit.hard_limit} "
                    f"/ {describe_window(limit.time_window)}"
                )
    await engine.dispose()
    print(f"\n{len(plans)} plan(s)")


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "seed":
        asyncio.run(seed())
    elif cmd == "list-plans":
        asyncio.run(list_plans())
    else:
        print("Usage: python -m onboard.cli [seed|list-plans]")

"""Community records mirrored from the hosting platform."""

from sqlalchemy.ext.asyncio import AsyncSession

from onboard.middleware.exceptions import ResourceNotFoundError
from onboard.models.community import Community
from onboard.utils.timeutils import utcnow
from onboard.utils.upsert import insert_for


async def get_community(db: AsyncSession, community_id: str) -> Community:
    community = await db.get(Community, community_id)
    if not community:
        raise ResourceNotFoundError("Community", community_id)
    return community


async def sync_community(db: AsyncSession, community_id: str, title: str) -> Community:
    """Create the community on first contact, or refresh its title.

    New communities start without a plan (default plan limits apply).
    """
    now = utcnow()
    stmt = insert_for(db, Community).values(
        id=community_id, title=title, created_at=now, updated_at=now
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["id"],
        set_={"title": stmt.excluded.title, "updated_at": now},
    )
    await db.execute(stmt)
    return await db.get(Community, community_id, populate_existing=True)

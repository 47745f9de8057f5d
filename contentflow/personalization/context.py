"""Load personalization inputs for a user.

Reads the profile and recent knowledge-base files. Every lookup is
best-effort: a failed read degrades the inputs instead of failing the job.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from contentflow.database.models import KnowledgeBaseFile, Profile
from contentflow.database.session import async_session_maker, get_session
from contentflow.personalization.personalizer import (
    ContentPillar,
    PersonalizationInputs,
    UserProfile,
)
from contentflow.schemas import EnrichmentContext


logger = logging.getLogger(__name__)

RECENT_FILES_LIMIT = 5


def _pillars_from(raw: list[dict] | None) -> tuple[ContentPillar, ...]:
    pillars = []
    for item in raw or []:
        if isinstance(item, dict) and item.get("name"):
            pillars.append(ContentPillar(name=item["name"], description=item.get("description") or ""))
    return tuple(pillars)


async def load_personalization_inputs(
    user_id: str,
    enrichment: EnrichmentContext,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> PersonalizationInputs:
    """Gather the profile, pillars, files and meeting context for `user_id`."""
    session_maker = session_maker or async_session_maker

    profile: UserProfile | None = None
    pillars: tuple[ContentPillar, ...] = ()
    try:
        async with get_session(session_maker) as session:
            row = await session.get(Profile, user_id)
        if row is not None:
            profile = UserProfile(
                role=row.role,
                skills=tuple(row.skills or ()),
                primary_goal=row.primary_goal,
                full_name=row.full_name,
            )
            pillars = _pillars_from(row.content_pillars)
    except Exception as e:
        logger.warning(f"Profile lookup failed for user {user_id}: {e}")

    kb = enrichment.knowledge_base_context
    if kb is not None and kb.recent_files:
        recent_files = tuple(f.name for f in kb.recent_files)
    else:
        recent_files = ()
        try:
            async with get_session(session_maker) as session:
                result = await session.execute(
                    select(KnowledgeBaseFile.file_name)
                    .where(KnowledgeBaseFile.user_id == user_id)
                    .order_by(KnowledgeBaseFile.created_at.desc())
                    .limit(RECENT_FILES_LIMIT)
                )
                recent_files = tuple(result.scalars().all())
        except Exception as e:
            logger.warning(f"Knowledge base lookup failed for user {user_id}: {e}")

    return PersonalizationInputs(
        profile=profile,
        pillars=pillars,
        recent_files=recent_files,
        meeting_context=enrichment.meeting_context,
    )

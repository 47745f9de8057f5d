"""Tests for topic/angle derivation and input loading."""

import random

from contentflow.database.models import KnowledgeBaseFile, Profile
from contentflow.database.session import get_session
from contentflow.personalization.context import load_personalization_inputs
from contentflow.personalization.personalizer import (
    GENERIC_ANGLE,
    GENERIC_TOPIC,
    ContentPillar,
    PersonalizationInputs,
    UserProfile,
    apply_meeting_override,
    derive_angle,
    derive_topic,
    personalize,
)
from contentflow.schemas import EnrichmentContext, MeetingContext


def rng():
    return random.Random(42)


PILLAR = ContentPillar(name="Remote Work", description="Running distributed teams")


# =============================================================================
# Topic
# =============================================================================

def test_topic_prefers_pillars():
    inputs = PersonalizationInputs(
        profile=UserProfile(role="Founder", skills=("sales",)),
        pillars=(PILLAR,),
        recent_files=("roadmap.pdf",),
    )
    assert derive_topic(inputs, rng()) == ("Remote Work: Running distributed teams", "pillar")


def test_topic_uses_recent_file_without_pillars():
    inputs = PersonalizationInputs(profile=UserProfile(role="Founder"), recent_files=("roadmap.pdf", "old.pdf"))
    assert derive_topic(inputs, rng()) == ("Key insights from roadmap.pdf", "knowledge_base")


def test_topic_from_role_and_top_three_skills():
    profile = UserProfile(role="Engineer", skills=("python", "sql", "k8s", "go"))
    topic, source = derive_topic(PersonalizationInputs(profile=profile), rng())
    assert topic == "Engineer insights on python, sql, k8s"
    assert source == "skills"


def test_topic_role_template_without_skills():
    topic, source = derive_topic(PersonalizationInputs(profile=UserProfile()), rng())
    assert topic == "Lessons learned as a professional"
    assert source == "role"


def test_topic_generic_without_profile():
    assert derive_topic(PersonalizationInputs(), rng()) == (GENERIC_TOPIC, "generic")


# =============================================================================
# Angle
# =============================================================================

def test_angle_maps_known_goal():
    profile = UserProfile(role="Founder", primary_goal="Thought Leadership")
    assert derive_angle(PersonalizationInputs(profile=profile), rng()) == ("Industry Thought Leadership", "goal")


def test_angle_passes_through_unknown_goal():
    profile = UserProfile(primary_goal="Hiring engineers")
    assert derive_angle(PersonalizationInputs(profile=profile), rng())[0] == "Hiring engineers Perspective"


def test_angle_from_pillar_without_goal():
    inputs = PersonalizationInputs(profile=UserProfile(role="Founder"), pillars=(PILLAR,))
    assert derive_angle(inputs, rng()) == ("Remote Work Insights", "pillar")


def test_angle_from_role_substring():
    profile = UserProfile(role="Co-Founder & CTO")
    assert derive_angle(PersonalizationInputs(profile=profile), rng()) == ("Entrepreneurial Perspective", "role")


def test_angle_default():
    profile = UserProfile(role="Astronaut")
    assert derive_angle(PersonalizationInputs(profile=profile), rng()) == (GENERIC_ANGLE, "generic")


# =============================================================================
# Meeting override and fallback
# =============================================================================

MEETING = MeetingContext.model_validate({
    "recent_meetings": [
        {
            "title": "Q3 planning",
            "topics_discussed": [{"text": "hiring"}, "pricing", {"text": "churn"}],
            "action_items": ["send deck"],
        },
        {"title": "Older sync"},
    ]
})


def test_meeting_overrides_topic_and_angle():
    topic, angle, overridden = apply_meeting_override("t", "a", MEETING)
    assert overridden
    assert topic == "Insights from recent meeting: Q3 planning"
    assert angle == "Meeting Insights: hiring, pricing"


def test_empty_meeting_context_keeps_values():
    assert apply_meeting_override("t", "a", MeetingContext()) == ("t", "a", False)
    assert apply_meeting_override("t", "a", None) == ("t", "a", False)


def test_personalize_reports_meeting_source():
    inputs = PersonalizationInputs(profile=UserProfile(role="Founder"), meeting_context=MEETING)
    result = personalize(inputs, rng())
    assert result.topic_source == "meeting"
    assert result.angle_source == "meeting"


def test_personalize_without_context_is_deterministic():
    inputs = PersonalizationInputs(profile=UserProfile(role="Marketing Manager"))
    first = personalize(inputs)
    second = personalize(inputs)
    assert first == second
    assert first.topic == "Lessons learned as a Marketing Manager"
    assert first.angle == "Marketing Strategy Insights"


def test_personalize_falls_back_on_error():
    broken = PersonalizationInputs(profile=UserProfile(primary_goal=123))  # not a str

    result = personalize(broken, rng())

    assert result.topic == GENERIC_TOPIC
    assert result.angle == GENERIC_ANGLE
    assert result.topic_source == "fallback"
    assert result.warnings


# =============================================================================
# Loading inputs
# =============================================================================

async def test_load_inputs_reads_profile_and_files(session_maker):
    async with get_session(session_maker) as session:
        session.add(Profile(
            user_id="user-1",
            role="Founder",
            skills=["sales", "hiring"],
            primary_goal="networking",
            content_pillars=[{"name": "Remote Work", "description": "Distributed teams"}, {"bad": "row"}],
        ))
        session.add(KnowledgeBaseFile(user_id="user-1", file_name="deck.pdf", extraction_status="completed"))

    inputs = await load_personalization_inputs("user-1", EnrichmentContext(), session_maker)

    assert inputs.profile.role == "Founder"
    assert inputs.profile.skills == ("sales", "hiring")
    assert inputs.pillars == (ContentPillar("Remote Work", "Distributed teams"),)
    assert inputs.recent_files == ("deck.pdf",)


async def test_load_inputs_prefers_payload_files(session_maker):
    enrichment = EnrichmentContext.from_payload({
        "knowledge_base_context": {"recent_files": [{"file_name": "notes.md", "extraction_status": "completed"}]},
    })

    inputs = await load_personalization_inputs("nobody", enrichment, session_maker)

    assert inputs.profile is None
    assert inputs.recent_files == ("notes.md",)


async def test_load_inputs_survives_database_errors(engine, session_maker):
    async with engine.begin() as conn:
        await conn.exec_driver_sql("DROP TABLE profiles")
        await conn.exec_driver_sql("DROP TABLE knowledge_base_files")

    inputs = await load_personalization_inputs("user-1", EnrichmentContext(), session_maker)

    assert inputs.profile is None
    assert inputs.recent_files == ()
    result = personalize(inputs, rng())
    assert result.topic == GENERIC_TOPIC

"""Context Personalizer: derive a topic and angle for a generation request.

Pure functions over an immutable `PersonalizationInputs`. Randomness (pillar
choice) comes from an injectable `random.Random` so callers can make the
result reproducible.

Topic priority (first match wins):
    1. content pillar        -> "{name}: {description}"
    2. recent knowledge file -> "Key insights from {file}"
    3. profile skills        -> "{role} insights on {top 3 skills}"
    4. role template         -> "Lessons learned as a {role}"
    5. no profile at all     -> GENERIC_TOPIC

Angle priority:
    1. primary goal  -> GOAL_ANGLES lookup, else "{goal} Perspective"
    2. content pillar -> "{name} Insights"
    3. role substring -> ROLE_ANGLES lookup, else GENERIC_ANGLE

A recent meeting overrides both.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field

from contentflow.schemas import MeetingContext


logger = logging.getLogger(__name__)


GENERIC_TOPIC = "Professional insights and lessons from my industry"
GENERIC_ANGLE = "Professional Experience Insights"

GOAL_ANGLES: dict[str, str] = {
    "thought leadership": "Industry Thought Leadership",
    "lead generation": "Problem-Solution Showcase",
    "brand awareness": "Personal Brand Storytelling",
    "networking": "Community Building Perspective",
    "recruiting": "Team and Culture Insights",
    "education": "Educational Deep Dive",
}

# Checked in order; the first substring found in the role wins
ROLE_ANGLES: tuple[tuple[str, str], ...] = (
    ("founder", "Entrepreneurial Perspective"),
    ("ceo", "Executive Leadership Perspective"),
    ("engineer", "Technical Deep Dive"),
    ("developer", "Technical Deep Dive"),
    ("product", "Product Strategy Insights"),
    ("marketing", "Marketing Strategy Insights"),
    ("sales", "Sales and Customer Insights"),
    ("consultant", "Advisory Perspective"),
    ("designer", "Design Thinking Perspective"),
    ("manager", "Leadership and Management Lessons"),
)


@dataclass(frozen=True)
class ContentPillar:
    name: str
    description: str = ""


@dataclass(frozen=True)
class UserProfile:
    role: str | None = None
    skills: tuple[str, ...] = ()
    primary_goal: str | None = None
    full_name: str | None = None


@dataclass(frozen=True)
class PersonalizationInputs:
    """Everything the personalizer reads. `profile=None` means the lookup failed."""
    profile: UserProfile | None = None
    pillars: tuple[ContentPillar, ...] = ()
    recent_files: tuple[str, ...] = ()
    meeting_context: MeetingContext | None = None


@dataclass(frozen=True)
class Personalization:
    topic: str
    angle: str
    topic_source: str = "generic"
    angle_source: str = "generic"
    warnings: tuple[str, ...] = field(default_factory=tuple)


def derive_topic(inputs: PersonalizationInputs, rng: random.Random) -> tuple[str, str]:
    """Return (topic, source)."""
    if inputs.pillars:
        pillar = rng.choice(inputs.pillars)
        return f"{pillar.name}: {pillar.description}", "pillar"

    if inputs.recent_files:
        return f"Key insights from {inputs.recent_files[0]}", "knowledge_base"

    profile = inputs.profile
    if profile is None:
        return GENERIC_TOPIC, "generic"

    role = profile.role or "professional"
    if profile.skills:
        top_skills = ", ".join(profile.skills[:3])
        return f"{role} insights on {top_skills}", "skills"

    return f"Lessons learned as a {role}", "role"


def derive_angle(inputs: PersonalizationInputs, rng: random.Random) -> tuple[str, str]:
    """Return (angle, source)."""
    profile = inputs.profile

    goal = (profile.primary_goal or "").strip() if profile else ""
    if goal:
        mapped = GOAL_ANGLES.get(goal.lower())
        return (mapped or f"{goal} Perspective"), "goal"

    if inputs.pillars:
        pillar = rng.choice(inputs.pillars)
        return f"{pillar.name} Insights", "pillar"

    role = (profile.role or "").lower() if profile else ""
    for needle, angle in ROLE_ANGLES:
        if needle in role:
            return angle, "role"
    return GENERIC_ANGLE, "generic"


def apply_meeting_override(
    topic: str,
    angle: str,
    meeting_context: MeetingContext | None,
) -> tuple[str, str, bool]:
    """Let the most recent meeting replace the derived topic/angle."""
    if meeting_context is None or not meeting_context.recent_meetings:
        return topic, angle, False

    latest = meeting_context.recent_meetings[0]
    overridden = False
    if latest.title:
        topic = f"Insights from recent meeting: {latest.title}"
        overridden = True

    main_topics = latest.topic_texts()[:2]
    if main_topics:
        angle = f"Meeting Insights: {', '.join(main_topics)}"
        overridden = True
    return topic, angle, overridden


def personalize(
    inputs: PersonalizationInputs,
    rng: random.Random | None = None,
) -> Personalization:
    """Derive topic and angle; never raises."""
    rng = rng or random.Random()
    try:
        topic, topic_source = derive_topic(inputs, rng)
        angle, angle_source = derive_angle(inputs, rng)
        meeting_topic, meeting_angle, _ = apply_meeting_override(topic, angle, inputs.meeting_context)
        if meeting_topic != topic:
            topic, topic_source = meeting_topic, "meeting"
        if meeting_angle != angle:
            angle, angle_source = meeting_angle, "meeting"
        return Personalization(
            topic=topic,
            angle=angle,
            topic_source=topic_source,
            angle_source=angle_source,
        )
    except Exception as e:
        logger.warning(f"Personalization failed, using generic defaults: {e}")
        return Personalization(
            topic=GENERIC_TOPIC,
            angle=GENERIC_ANGLE,
            topic_source="fallback",
            angle_source="fallback",
            warnings=(str(e),),
        )

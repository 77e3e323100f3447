from __future__ import annotations

from imagine_stories.common.models import GradeProfile

# (upper grade bound, profile); the last tier catches everything above grade 5.
GRADE_TIERS = [
    (
        1,
        GradeProfile(
            reading_time="about 3 minutes",
            complexity="Use very short sentences, simple everyday words, and lots of repetition.",
            length="Keep it to roughly 250-350 words.",
        ),
    ),
    (
        3,
        GradeProfile(
            reading_time="about 5 minutes",
            complexity="Use short paragraphs, clear events, simple dialogue, and a few new words explained by context.",
            length="Keep it to roughly 400-550 words.",
        ),
    ),
    (
        5,
        GradeProfile(
            reading_time="about 7 minutes",
            complexity="Use longer paragraphs, richer vocabulary, and a gentle problem the character works through.",
            length="Keep it to roughly 600-800 words.",
        ),
    ),
]
UPPER_PROFILE = GradeProfile(
    reading_time="about 10 minutes",
    complexity="Use varied sentence structure, descriptive language, and some light suspense.",
    length="Keep it to roughly 900-1200 words.",
)


def parse_grade(grade: str | int | None) -> int:
    """Grade label as an int; anything non-numeric counts as grade 1."""
    try:
        return int(str(grade).strip())
    except (TypeError, ValueError):
        return 1


def grade_profile(grade: str | int | None) -> GradeProfile:
    value = parse_grade(grade)
    for upper, profile in GRADE_TIERS:
        if value <= upper:
            return profile
    return UPPER_PROFILE

"""Achievement rules.

Each rule is a predicate over the aggregate plus fixed metadata. Rules run
after every statistics update; an achievement type unlocks at most once.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import NamedTuple

import structlog

from .models import Achievement, AchievementType, ProgressAggregate


logger = structlog.get_logger(__name__)


class AchievementRule(NamedTuple):
    type: AchievementType
    title: str
    description: str
    points: int
    predicate: Callable[[ProgressAggregate], bool]
    value: Callable[[ProgressAggregate], float]


def _completed_lectures(aggregate: ProgressAggregate) -> int:
    return sum(1 for _, _, lecture in aggregate.iter_lectures() if lecture.is_completed)


def _overall(aggregate: ProgressAggregate) -> float:
    return aggregate.statistics.completion.overall


def _current_streak(aggregate: ProgressAggregate) -> int:
    return aggregate.statistics.engagement.streak.current


ACHIEVEMENT_RULES: list[AchievementRule] = [
    AchievementRule(
        type=AchievementType.FIRST_LECTURE,
        title="First Steps",
        description="Completed your first lecture!",
        points=10,
        predicate=lambda agg: _completed_lectures(agg) >= 1,
        value=_completed_lectures,
    ),
    AchievementRule(
        type=AchievementType.HALFWAY_POINT,
        title="Halfway There",
        description="Completed half of the course!",
        points=50,
        predicate=lambda agg: _overall(agg) >= 50,
        value=_overall,
    ),
    AchievementRule(
        type=AchievementType.FIRST_COMPLETION,
        title="Course Champion",
        description="Completed your first course!",
        points=100,
        predicate=lambda agg: _overall(agg) >= 100,
        value=_overall,
    ),
    AchievementRule(
        type=AchievementType.WEEK_STREAK,
        title="Weekly Warrior",
        description="Maintained a 7-day learning streak!",
        points=50,
        predicate=lambda agg: _current_streak(agg) >= 7,
        value=_current_streak,
    ),
    AchievementRule(
        type=AchievementType.MONTH_STREAK,
        title="Monthly Master",
        description="Maintained a 30-day learning streak!",
        points=200,
        predicate=lambda agg: _current_streak(agg) >= 30,
        value=_current_streak,
    ),
]


def evaluate_achievements(
    aggregate: ProgressAggregate,
    *,
    now: datetime | None = None,
    rules: list[AchievementRule] | None = None,
) -> list[Achievement]:
    """Unlock every achievement whose rule now holds.

    Unlocked achievements are appended to the aggregate.

    Returns:
        Only the achievements unlocked by this call
    """
    now = now or datetime.now(UTC)
    unlocked: list[Achievement] = []

    for rule in ACHIEVEMENT_RULES if rules is None else rules:
        if aggregate.has_achievement(rule.type.value):
            continue
        if not rule.predicate(aggregate):
            continue

        achievement = Achievement(
            type=rule.type.value,
            title=rule.title,
            description=rule.description,
            earned_at=now,
            value=rule.value(aggregate),
            points=rule.points,
        )
        aggregate.achievements.append(achievement)
        unlocked.append(achievement)
        logger.info(
            "achievement_unlocked",
            user_id=str(aggregate.user_id),
            course_id=str(aggregate.course_id),
            achievement=rule.type.value,
        )

    return unlocked

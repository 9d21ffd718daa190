"""Daily activity streak and weekly study goal."""

from datetime import UTC, date, datetime, timedelta, tzinfo

from .models import ProgressAggregate, StreakState, WeeklyGoal, ensure_utc_aware


def activity_day(activity_timestamp: datetime | None, tz: tzinfo = UTC) -> date:
    """Calendar day of an activity in the configured timezone."""
    ts = ensure_utc_aware(activity_timestamp) or datetime.now(UTC)
    return ts.astimezone(tz).date()


def week_start_for(day: date) -> date:
    """Sunday starting the week that contains ``day``."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def touch_activity(
    aggregate: ProgressAggregate,
    activity_timestamp: datetime | None = None,
    *,
    tz: tzinfo = UTC,
) -> StreakState:
    """Advance the streak for an activity.

    Same day: no change. Next day: the streak grows. Later: it restarts at
    one. An activity older than the last recorded day changes nothing.
    """
    engagement = aggregate.statistics.engagement
    streak = engagement.streak
    today = activity_day(activity_timestamp, tz)

    if streak.last_activity_date is None:
        streak.current = 1
        streak.longest = max(streak.longest, 1)
    else:
        days_since = (today - streak.last_activity_date).days
        if days_since <= 0:
            return streak
        if days_since == 1:
            streak.current += 1
        else:
            streak.current = 1
        streak.longest = max(streak.longest, streak.current)

    streak.last_activity_date = today
    engagement.total_days_active += 1
    return streak


def record_study_time(
    aggregate: ProgressAggregate,
    seconds: float,
    activity_timestamp: datetime | None = None,
    *,
    tz: tzinfo = UTC,
) -> WeeklyGoal:
    """Add study time to the weekly goal, starting a new week when needed."""
    goal = aggregate.statistics.engagement.weekly_goal
    week_start = week_start_for(activity_day(activity_timestamp, tz))

    if goal.week_start is None or week_start > goal.week_start:
        goal.week_start = week_start
        goal.achieved_minutes = 0
    elif week_start < goal.week_start:
        return goal

    if seconds > 0:
        goal.achieved_minutes += seconds / 60
    return goal

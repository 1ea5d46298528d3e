"""
Context Section Builders

Render plain activity data into the text sections of the assistant's system
prompt. Functions here take already-read snapshots and ``now``; reading the
sources (and caching) is the assembler's job.

Sections:
    header          identity, user, time of day, weekday
    settings        === PROFILE ===
    tasks           === TASKS ===            (task tier)
    progress        === TODAY'S PROGRESS === (progress tier, with recent sessions)
    presets         === FOCUS PRESETS ===    (preset tier)
    focus state     === FOCUS STATE ===
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import date, datetime, timedelta
from typing import Optional

from flowcore.learning.behavior_analyzer import calculate_streak, daily_minutes, time_of_day
from flowcore.models import (
    FocusState,
    PresetRecord,
    RepeatRule,
    SessionRecord,
    SettingsSnapshot,
    TaskRecord,
)

MAX_TODAY_TASKS = 10
MAX_OTHER_TASKS = 5
RECENT_SESSIONS = 5
UPCOMING_DAYS = 7


def format_datetime(value: datetime) -> str:
    return f"{value:%A, %B} {value.day}, {value.year} at {format_time(value)}"


def format_time(value: datetime) -> str:
    hour = value.hour % 12 or 12
    return f"{hour}:{value:%M} {'PM' if value.hour >= 12 else 'AM'}"


def format_short_date(value: datetime) -> str:
    return f"{value:%b} {value.day}"


def build_header(
    settings: SettingsSnapshot,
    now: datetime,
    assistant_name: str = "Flow",
    app_name: str = "FocusFlow",
) -> str:
    first_name = settings.first_name
    return "\n".join([
        f"You are {assistant_name}, the AI companion inside {app_name}. "
        "You're a supportive friend who genuinely helps users achieve their goals.",
        "",
        "PERSONALITY:",
        "- Warm and encouraging, never cheesy",
        "- Concise, respect the user's time",
        "- Proactive, anticipate needs",
        f"- Use {first_name}'s name naturally",
        "- Emojis: 1-2 max, only when natural",
        "",
        "RESPONSE RULES:",
        "- Lead with action when the user wants something done",
        "- NEVER lecture about productivity",
        "- NEVER make the user feel guilty",
        "",
        "=== CURRENT CONTEXT ===",
        f"User: {first_name}",
        f"Time: {format_datetime(now)} ({time_of_day(now.hour)})",
        f"Day: {now:%A}",
    ])


def build_settings_section(settings: SettingsSnapshot) -> str:
    return "\n".join([
        "=== PROFILE ===",
        f"Name: {settings.display_name or 'Not set'}",
        f"Theme: {settings.theme}",
        f"Daily Goal: {settings.daily_goal_minutes} minutes",
        f"Sound: {'On' if settings.sound_enabled else 'Off'}",
        f"Haptics: {'On' if settings.haptics_enabled else 'Off'}",
    ])


def _task_line(task: TaskRecord, status: str, with_repeat: bool = False) -> str:
    line = f"  {status} {task.title}"
    if task.reminder_date is not None:
        line += f" at {format_time(task.reminder_date)}"
    if with_repeat and task.repeat_rule != RepeatRule.NONE:
        line += f" (repeats: {task.repeat_rule.display_name})"
    return f"{line} [ID: {task.id}]"


def build_task_section(
    tasks: Sequence[TaskRecord],
    is_completed: Callable[[str, date], bool],
    now: datetime,
) -> str:
    if not tasks:
        return "=== TASKS ===\nNo tasks yet."

    tasks = [t.aligned_to(now) for t in tasks]
    lines = ["=== TASKS ==="]
    today = now.date()
    tomorrow = today + timedelta(days=1)

    today_tasks = [t for t in tasks if t.occurs_on(today)]
    if today_tasks:
        lines.append(f"Today ({len(today_tasks)} tasks):")
        for task in today_tasks[:MAX_TODAY_TASKS]:
            status = "[x]" if is_completed(task.id, today) else "[ ]"
            lines.append(_task_line(task, status, with_repeat=True))

    tomorrow_tasks = [t for t in tasks if t.occurs_on(tomorrow)]
    if tomorrow_tasks:
        lines.append(f"Tomorrow ({len(tomorrow_tasks)} tasks):")
        lines.extend(_task_line(t, "[ ]") for t in tomorrow_tasks[:MAX_OTHER_TASKS])

    # One-off tasks only; repeating ones already show under today/tomorrow
    horizon = now + timedelta(days=UPCOMING_DAYS)
    upcoming = sorted(
        (
            t
            for t in tasks
            if t.repeat_rule == RepeatRule.NONE
            and t.reminder_date is not None
            and now < t.reminder_date <= horizon
            and not t.occurs_on(today)
        ),
        key=lambda t: t.reminder_date,
    )
    if upcoming:
        lines.append(f"Upcoming (next {UPCOMING_DAYS} days):")
        for task in upcoming[:MAX_OTHER_TASKS]:
            lines.append(f"  [ ] {task.title} - {format_short_date(task.reminder_date)} [ID: {task.id}]")

    undated = [t for t in tasks if t.reminder_date is None and t.repeat_rule == RepeatRule.NONE]
    if undated:
        lines.append("No date set:")
        lines.extend(f"  [ ] {t.title} [ID: {t.id}]" for t in undated[:MAX_OTHER_TASKS])

    return "\n".join(lines)


def build_progress_section(
    sessions: Sequence[SessionRecord],
    daily_goal_minutes: int,
    now: datetime,
    streak_limit_days: int = 365,
) -> str:
    sessions = [s.aligned_to(now) for s in sessions]
    today = now.date()
    today_sessions = [s for s in sessions if s.date.date() == today]
    today_minutes = daily_minutes(today_sessions).get(today, 0)
    percentage = (
        min(100, (today_minutes * 100) // daily_goal_minutes) if daily_goal_minutes > 0 else 0
    )
    streak = calculate_streak(sessions, now, streak_limit_days)

    # Week starts on Monday
    week_start = datetime.combine(
        today - timedelta(days=today.weekday()), datetime.min.time(), tzinfo=now.tzinfo
    )
    week_sessions = [s for s in sessions if s.date >= week_start]
    week_minutes = int(sum(s.duration_seconds for s in week_sessions) // 60)

    lines = [
        "=== TODAY'S PROGRESS ===",
        f"Focused: {today_minutes} / {daily_goal_minutes} minutes ({percentage}%)",
        f"Sessions: {len(today_sessions)}",
        f"Streak: {streak} days",
        f"This Week: {week_minutes} minutes ({len(week_sessions)} sessions)",
        "",
        "=== RECENT SESSIONS ===",
    ]

    recent = sorted(sessions, key=lambda s: s.date)[-RECENT_SESSIONS:]
    if not recent:
        lines.append("No focus sessions yet.")
    for session in reversed(recent):
        lines.append(
            f"  - {format_short_date(session.date)}: {session.label or 'Focus'} ({session.minutes} min)"
        )
    return "\n".join(lines)


def build_preset_section(presets: Sequence[PresetRecord], active_preset_id: Optional[str]) -> str:
    if not presets:
        return "=== FOCUS PRESETS ===\nNo presets. User can create custom focus presets."

    lines = ["=== FOCUS PRESETS ==="]
    for preset in presets:
        active = " (ACTIVE)" if preset.id == active_preset_id else ""
        lines.append(f"  - {preset.name} - {preset.duration_seconds // 60} min [ID: {preset.id}]{active}")
    return "\n".join(lines)


def build_focus_state_section(state: FocusState) -> str:
    if not state.is_active:
        status = "No focus session running"
    elif state.is_paused:
        status = f"Focus session PAUSED ({state.remaining_minutes} min left)"
    else:
        status = f"Focus session IN PROGRESS ({state.remaining_minutes} min left)"
    return f"=== FOCUS STATE ===\n{status}"


def truncate(text: str, max_characters: int) -> str:
    if len(text) <= max_characters:
        return text
    return text[: max_characters - 3] + "..."

"""Level curve and the calculations derived from it."""
from typing import NamedTuple


class LevelThreshold(NamedTuple):
    level: int
    title: str
    cumulative_xp_needed: int


LEVEL_DATA = (
    LevelThreshold(1, "Newbie", 0),
    LevelThreshold(2, "Intern", 20),
    LevelThreshold(3, "Senior Intern", 150),
    LevelThreshold(4, "Fresher", 300),
    LevelThreshold(5, "Junior Dev I", 500),
    LevelThreshold(6, "Junior Dev II", 750),
    LevelThreshold(7, "Junior Dev III", 1050),
    LevelThreshold(8, "Junior Dev IV", 1400),
    LevelThreshold(9, "Junior Dev V", 1800),
    LevelThreshold(10, "Mid-Level Dev I", 2500),
    LevelThreshold(11, "Mid-Level Dev II", 3300),
    LevelThreshold(12, "Mid-Level Dev III", 4200),
    LevelThreshold(13, "Mid-Level Dev IV", 5200),
    LevelThreshold(14, "Mid-Level Dev V", 6300),
    LevelThreshold(15, "Senior Dev I", 8000),
    LevelThreshold(16, "Senior Dev II", 9800),
    LevelThreshold(17, "Senior Dev III", 11700),
    LevelThreshold(18, "Senior Dev IV", 13700),
    LevelThreshold(19, "Senior Dev V", 15800),
    LevelThreshold(20, "Solution Architect", 20000),
)

MIN_LEVEL = LEVEL_DATA[0].level
MAX_LEVEL = LEVEL_DATA[-1].level


def all_levels():
    return LEVEL_DATA


def get_level(level: int) -> LevelThreshold:
    """Threshold for ``level``, clamped into the table."""
    level = min(max(int(level or MIN_LEVEL), MIN_LEVEL), MAX_LEVEL)
    return LEVEL_DATA[level - MIN_LEVEL]


def level_for_xp(xp) -> LevelThreshold:
    """Highest threshold reached with ``xp``; negative or missing XP counts as 0."""
    safe_xp = max(xp or 0, 0)
    current = LEVEL_DATA[0]
    for threshold in LEVEL_DATA:
        if safe_xp >= threshold.cumulative_xp_needed:
            current = threshold
        else:
            break
    return current


def xp_to_next_level(level: int, xp) -> int:
    """XP still missing for the next level; 0 at the cap."""
    if level >= MAX_LEVEL:
        return 0
    next_threshold = get_level(level + 1)
    return max(next_threshold.cumulative_xp_needed - max(xp or 0, 0), 0)


def progress_to_next_level(level: int, xp) -> float:
    """Percentage (0-100) of the way from ``level`` to the next one."""
    if level >= MAX_LEVEL:
        return 100.0
    current = get_level(level)
    following = get_level(level + 1)
    span = following.cumulative_xp_needed - current.cumulative_xp_needed
    if span <= 0:
        return 100.0
    progress = (max(xp or 0, 0) - current.cumulative_xp_needed) / span * 100
    return min(100.0, max(0.0, progress))


def check_level_up(previous_xp, new_xp) -> bool:
    return level_for_xp(new_xp).level > level_for_xp(previous_xp).level


def level_summary(xp) -> dict:
    threshold = level_for_xp(xp)
    return {
        "level": threshold.level,
        "title": threshold.title,
        "total_xp": max(xp or 0, 0),
        "xp_to_next_level": xp_to_next_level(threshold.level, xp),
        "progress_percent": round(progress_to_next_level(threshold.level, xp), 1),
        "is_max_level": threshold.level >= MAX_LEVEL,
    }

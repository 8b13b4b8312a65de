"""Figures derived from decoded reports for each dashboard tab"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from game_analytics.schemas.analytics import (
    BaseStationRow,
    ChurnRow,
    LevelAnalysisRow,
    OverallStats,
    RewardedAdsResponse,
    SilverCoinBoostRow,
)
from game_analytics.services.cohorts import DAY_OFFSETS

ALL_REWARDED_ADS = "ALL_REWARDED_ADS"
REWARDED_AD_PREFIX = "RV_Watched_"

UNIT_ID_PREFIX = re.compile(r"^\d+\s*-\s*")


@dataclass
class Overview:
    total_users: Optional[int]
    total_rewarded_ads: int
    avg_completion_rate: float
    level_completions: Optional[int]


@dataclass
class CohortCell:
    day: int
    events: int
    users: int
    avg_per_user: float


def total_rewarded_ads(rewarded_ads: RewardedAdsResponse) -> int:
    if rewarded_ads.totals is not None:
        return rewarded_ads.totals.total_count
    return sum(row.total_count for row in rewarded_ads.rows)


def avg_completion_rate(levels: List[LevelAnalysisRow]) -> float:
    """Mean of per-level completion rates, missing rates counting as 0"""
    if not levels:
        return 0.0
    return round(sum(row.completion_rate or 0 for row in levels) / len(levels), 1)


def overview(stats: OverallStats, rewarded_ads: RewardedAdsResponse, levels: List[LevelAnalysisRow]) -> Overview:
    return Overview(
        total_users=stats.total_users,
        total_rewarded_ads=total_rewarded_ads(rewarded_ads),
        avg_completion_rate=avg_completion_rate(levels),
        level_completions=stats.total_level_completions,
    )


def _max_by(rows: List[ChurnRow], attr: str) -> Optional[ChurnRow]:
    # First row wins ties; rows scoring 0 or null never qualify
    best, best_score = None, 0
    for row in rows:
        score = getattr(row, attr) or 0
        if score > best_score:
            best, best_score = row, score
    return best


def hardest_level(churn: List[ChurnRow]) -> Optional[ChurnRow]:
    return _max_by(churn, "difficulty_score")


def max_churn_level(churn: List[ChurnRow]) -> Optional[ChurnRow]:
    return _max_by(churn, "churn_rate")


def boost_delta(row: SilverCoinBoostRow) -> float:
    """Completion rate gained (or lost) by watching a silver coin ad first"""
    return round((row.completion_rate_with_boost or 0) - (row.completion_rate_without_boost or 0), 2)


def cohort_cells(row: Any) -> List[CohortCell]:
    cells = []
    for day in DAY_OFFSETS:
        events = getattr(row, f"day_{day}_events", 0) or 0
        users = getattr(row, f"day_{day}_users", 0) or 0
        avg = round(events / users, 2) if users > 0 else 0.0
        cells.append(CohortCell(day=day, events=events, users=users, avg_per_user=avg))
    return cells


def base_station_pivot(rows: List[BaseStationRow]) -> Tuple[List[Dict[str, Any]], List[str]]:
    """
    Pivot base station upgrades to one point per upgrade level.

    Returns the points, sorted by upgrade level, each mapping skill name to
    upgrade count, and the skills in order of first appearance.
    """
    by_level: Dict[Any, Dict[str, Any]] = {}
    skills: List[str] = []
    for row in rows:
        point = by_level.setdefault(row.upgrade_level, {"upgrade_level": row.upgrade_level})
        point[row.skill] = row.upgrade_count
        if row.skill not in skills:
            skills.append(row.skill)

    points = sorted(by_level.values(), key=lambda p: (p["upgrade_level"] is None, p["upgrade_level"] or 0))
    return points, skills


def clean_unit_name(name: Optional[str]) -> Optional[str]:
    """'9 - Stinger Drone' -> 'Stinger Drone'"""
    if not name:
        return name
    return UNIT_ID_PREFIX.sub("", name)


def format_loadout(loadout: str) -> str:
    return ", ".join(clean_unit_name(unit.strip()) for unit in loadout.split(","))


def ad_display_name(event_name: str) -> str:
    if event_name == ALL_REWARDED_ADS:
        return "All Rewarded Ads"
    return event_name.replace(REWARDED_AD_PREFIX, "", 1).replace("_", " ")

from pydantic import BaseModel, Field, create_model
from datetime import date
from typing import Annotated, List, Literal, Optional, Union

from game_analytics.services.cohorts import DAY_OFFSETS


class RewardedAdRow(BaseModel):
    """Views of one rewarded-ad event (or the synthetic TOTAL row)"""
    event_name: str
    total_count: int
    unique_users: int
    avg_per_user: Optional[float] = None
    total_users: Optional[int] = None
    avg_per_all_users: Optional[float] = None


class RewardedAdsResponse(BaseModel):
    """Rewarded-ad rows plus totals (null when there are no rows)"""
    rows: List[RewardedAdRow] = Field(default_factory=list)
    totals: Optional[RewardedAdRow] = None


class LevelAnalysisRow(BaseModel):
    level: int
    completions: int
    failures: int
    total_attempts: int
    unique_users: int
    completion_rate: Optional[float] = None
    avg_duration_complete: Optional[float] = None
    avg_duration_fail: Optional[float] = None
    avg_attempts_to_complete: Optional[float] = None


class SilverCoinBoostRow(BaseModel):
    level: int
    total_attempts: int
    attempts_with_boost: int
    completions_with_boost: int
    completions_without_boost: int
    boost_usage_rate: Optional[float] = None
    completion_rate_with_boost: Optional[float] = None
    completion_rate_without_boost: Optional[float] = None


class FrequencyRow(BaseModel):
    """How often a unit appears across loadouts"""
    result_type: Literal["unit_frequency"] = "unit_frequency"
    name: str
    usage_count: int
    additional_info: Optional[int] = None  # distinct loadouts containing the unit


class LoadoutRow(BaseModel):
    """A full loadout string, kept verbatim"""
    result_type: Literal["top_loadouts"] = "top_loadouts"
    name: str
    usage_count: int
    additional_info: None = None


LoadoutResultRow = Annotated[Union[FrequencyRow, LoadoutRow], Field(discriminator="result_type")]


class UnitLoadoutResponse(BaseModel):
    unitFrequency: List[FrequencyRow] = Field(default_factory=list)
    topLoadouts: List[LoadoutRow] = Field(default_factory=list)


class UnitUpgradeRow(BaseModel):
    unit_name: str
    total_upgrades: int
    avg_upgrade_level: Optional[float] = None
    min_level: Optional[int] = None
    max_level: Optional[int] = None


class ChurnRow(BaseModel):
    level: int
    users_reached_level: int
    users_churned_at_level: int
    churn_rate: Optional[float] = None
    failure_rate: Optional[float] = None
    difficulty_score: Optional[float] = None


class BoosterBoxRow(BaseModel):
    box_id: str
    times_opened: int
    unique_users: int
    avg_per_user: Optional[float] = None


class BaseStationRow(BaseModel):
    skill: str
    upgrade_level: Optional[int] = None
    upgrade_count: int
    unique_users: int


class OverallStats(BaseModel):
    """Headline counters; every field is null when the report returned no row"""
    total_users: Optional[int] = None
    users_who_played: Optional[int] = None
    total_rewarded_ads: Optional[int] = None
    total_level_completions: Optional[int] = None
    total_level_failures: Optional[int] = None
    total_unit_upgrades: Optional[int] = None
    total_booster_boxes_opened: Optional[int] = None


class CountryRow(BaseModel):
    country: str
    user_count: int


class VersionRow(BaseModel):
    version: str
    user_count: int


def _day_bucket_fields() -> dict:
    fields = {"install_date": (date, ...), "cohort_size": (int, ...)}
    for day in DAY_OFFSETS:
        fields[f"day_{day}_events"] = (int, 0)
        fields[f"day_{day}_users"] = (int, 0)
    return fields


DayBucketRow = create_model(
    "DayBucketRow",
    __doc__="Events and active users per day offset for one install date",
    **_day_bucket_fields(),
)

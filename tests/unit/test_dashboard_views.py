from datetime import date

from game_analytics.dashboard import views
from game_analytics.schemas.analytics import (
    BaseStationRow,
    ChurnRow,
    DayBucketRow,
    LevelAnalysisRow,
    OverallStats,
    RewardedAdRow,
    RewardedAdsResponse,
    SilverCoinBoostRow,
)


def _level(level, rate):
    return LevelAnalysisRow(
        level=level, completions=1, failures=1, total_attempts=2, unique_users=1, completion_rate=rate
    )


def _churn(level, churn_rate=None, difficulty=None):
    return ChurnRow(
        level=level,
        users_reached_level=10,
        users_churned_at_level=1,
        churn_rate=churn_rate,
        difficulty_score=difficulty,
    )


def test_overview_prefers_totals_over_row_sum():
    row = RewardedAdRow(event_name="RV_Watched_A", total_count=4, unique_users=2)
    with_totals = RewardedAdsResponse(rows=[row], totals=row.model_copy(update={"total_count": 99}))
    without_totals = RewardedAdsResponse(rows=[row, row])

    assert views.total_rewarded_ads(with_totals) == 99
    assert views.total_rewarded_ads(without_totals) == 8


def test_overview_mean_completion_rate():
    overview = views.overview(
        OverallStats(total_users=5, total_level_completions=7),
        RewardedAdsResponse(),
        [_level(1, 80.0), _level(2, None), _level(3, 45.5)],
    )
    assert overview.avg_completion_rate == 41.8
    assert overview.total_users == 5
    assert overview.level_completions == 7
    assert overview.total_rewarded_ads == 0
    assert views.avg_completion_rate([]) == 0.0


def test_hardest_and_max_churn_level():
    rows = [_churn(1, 5.0, 1.2), _churn(2, 30.0, 3.5), _churn(3, 30.0, None)]
    assert views.hardest_level(rows).level == 2
    assert views.max_churn_level(rows).level == 2


def test_no_qualifying_level():
    assert views.hardest_level([]) is None
    assert views.max_churn_level([_churn(1, 0.0), _churn(2, None)]) is None


def test_cohort_cells_average_per_user():
    row = DayBucketRow(install_date=date(2024, 6, 1), cohort_size=4, day_0_events=9, day_0_users=4, day_1_events=3)
    cells = views.cohort_cells(row)

    assert [cell.day for cell in cells] == [0, 1, 2, 3, 4, 5, 6, 7, 14, 30, 45, 60, 75, 90]
    assert cells[0].avg_per_user == 2.25
    assert cells[1].avg_per_user == 0.0


def test_base_station_pivot():
    rows = [
        BaseStationRow(skill="Shield", upgrade_level=2, upgrade_count=3, unique_users=3),
        BaseStationRow(skill="Laser", upgrade_level=1, upgrade_count=8, unique_users=6),
        BaseStationRow(skill="Shield", upgrade_level=1, upgrade_count=5, unique_users=5),
    ]

    points, skills = views.base_station_pivot(rows)

    assert skills == ["Shield", "Laser"]
    assert points == [
        {"upgrade_level": 1, "Laser": 8, "Shield": 5},
        {"upgrade_level": 2, "Shield": 3},
    ]


def test_boost_delta():
    row = SilverCoinBoostRow(
        level=1,
        total_attempts=10,
        attempts_with_boost=4,
        completions_with_boost=3,
        completions_without_boost=2,
        completion_rate_with_boost=75.0,
        completion_rate_without_boost=33.33,
    )
    assert views.boost_delta(row) == 41.67


def test_unit_names():
    assert views.clean_unit_name("9 - Stinger Drone") == "Stinger Drone"
    assert views.clean_unit_name("14-Tank") == "Tank"
    assert views.clean_unit_name("Scout") == "Scout"
    assert views.format_loadout("1 - Tank, 9 - Stinger Drone,3 - Scout") == "Tank, Stinger Drone, Scout"


def test_ad_display_name():
    assert views.ad_display_name("ALL_REWARDED_ADS") == "All Rewarded Ads"
    assert views.ad_display_name("RV_Watched_Extra_Life") == "Extra Life"

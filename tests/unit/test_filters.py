import pytest
from datetime import date

from game_analytics.core.errors import ClientInputError
from game_analytics.services.filters import (
    ReportFilter,
    cohort_cte,
    cohort_join,
    country_filter,
    date_filter,
    dimension_filters,
    level_filter,
    platform_filter,
    version_filter,
)


def test_blank_all_and_absent_country_are_identical():
    fragments = [
        country_filter(ReportFilter.from_query(country=value))
        for value in ("", "all", None, "   ")
    ]
    assert all(f.sql == "" and f.params == {} for f in fragments)


def test_country_and_version_are_bound_not_interpolated():
    f = ReportFilter.from_query(country="Germany'; DROP TABLE events; --", version="1.4.0")

    country = country_filter(f)
    version = version_filter(f)

    assert country.sql == "AND geo.country = $country"
    assert country.params == {"country": "Germany'; DROP TABLE events; --"}
    assert version.sql == "AND app_info.version = $version"
    assert version.params == {"version": "1.4.0"}


def test_platform_is_upper_cased():
    fragment = platform_filter(ReportFilter.from_query(platform="ios"))
    assert fragment.sql == "AND platform = $platform"
    assert fragment.params == {"platform": "IOS"}


def test_platform_all_is_empty():
    assert not platform_filter(ReportFilter.from_query(platform="all"))
    assert not platform_filter(ReportFilter.from_query(platform=""))


def test_date_filter_needs_both_bounds():
    only_start = ReportFilter.from_query(start_date="2024-06-01")
    both = ReportFilter.from_query(start_date="2024-06-01", end_date="2024-06-07")

    assert not only_start.has_date_range
    assert not date_filter(only_start)
    assert both.has_date_range
    assert date_filter(both).params == {"start_date": date(2024, 6, 1), "end_date": date(2024, 6, 7)}


def test_malformed_date_is_client_error():
    with pytest.raises(ClientInputError) as exc:
        ReportFilter.from_query(start_date="01/06/2024")
    assert exc.value.status_code == 400


def test_level_count_defaults_and_rejects_garbage():
    assert ReportFilter.from_query().level_count == 50
    assert ReportFilter.from_query(level_count="10").level_count == 10
    with pytest.raises(ClientInputError):
        ReportFilter.from_query(level_count="ten")
    with pytest.raises(ClientInputError) as exc:
        ReportFilter.from_query(level_count="-1")
    assert exc.value.message == "levelCount must be a non-negative integer"
    assert ReportFilter.from_query(level_count="0").level_count == 0


def test_level_filter():
    assert not level_filter(ReportFilter.from_query(level="all"))
    fragment = level_filter(ReportFilter.from_query(level="7"))
    assert fragment.params == {"level": 7}
    assert "$level" in fragment.sql


def test_dimension_filters_can_skip_own_dimension():
    f = ReportFilter.from_query(platform="android", country="Brazil", version="2.0")

    everything = dimension_filters(f)
    no_country = dimension_filters(f, country=False)

    assert set(everything.params) == {"platform", "country", "version"}
    assert set(no_country.params) == {"platform", "version"}
    assert "geo.country" not in no_country.sql


def test_cohort_cte_and_join_only_with_date_range():
    without = ReportFilter.from_query(start_date="2024-06-01")
    with_range = ReportFilter.from_query(start_date="2024-06-01", end_date="2024-06-07", platform="ios")

    assert not cohort_cte(without, "events")
    assert not cohort_join(without)

    cte = cohort_cte(with_range, "events")
    assert cte.sql.startswith("user_cohorts AS (")
    assert "event_name = 'first_open'" in cte.sql
    assert cte.params == {"platform": "IOS", "start_date": date(2024, 6, 1), "end_date": date(2024, 6, 7)}
    assert cohort_join(with_range, "le").sql == "INNER JOIN user_cohorts uc ON le.user_pseudo_id = uc.user_pseudo_id"


def test_fragments_concatenate():
    f = ReportFilter.from_query(platform="ios", country="Spain")
    combined = platform_filter(f) + country_filter(f)
    assert combined.sql == "AND platform = $platform\nAND geo.country = $country"
    assert combined.params == {"platform": "IOS", "country": "Spain"}


def test_with_level_keeps_other_filters():
    f = ReportFilter.from_query(platform="ios", level_count="5")

    restricted = f.with_level("3")

    assert restricted.level == 3
    assert restricted.platform == "ios"
    assert restricted.level_count == 5
    assert f.with_level("all").level is None
    with pytest.raises(ClientInputError):
        f.with_level("three")

import pytest
from httpx import AsyncClient, ASGITransport

from game_analytics.core.config import settings
from game_analytics.services.sessions import issue_token


def _client(app):
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_health_check(api):
    """Health is public and never touches the warehouse"""
    async with _client(api) as client:
        response = await client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "OK"
    assert "timestamp" in data


@pytest.mark.asyncio
async def test_reports_require_cookie(api, warehouse):
    async with _client(api) as client:
        response = await client.get("/api/level-analysis")

    assert response.status_code == 401
    assert response.json() == {"error": "No authentication token provided"}
    assert warehouse.calls == []


@pytest.mark.asyncio
async def test_invalid_cookie_is_forbidden(api, warehouse):
    async with _client(api) as client:
        response = await client.get("/api/churn-analysis", headers={"Cookie": "auth_token=forged.token"})

    assert response.status_code == 403
    assert response.json() == {"error": "Invalid or expired token"}
    assert warehouse.calls == []


@pytest.mark.asyncio
async def test_revoked_email_clears_cookie(api, auth_config, warehouse):
    token = issue_token(auth_config, {"email": "former@example.com"})

    async with _client(api) as client:
        response = await client.get("/api/overall-stats", headers={"Cookie": f"auth_token={token}"})

    assert response.status_code == 403
    assert response.json() == {"error": "Access denied"}
    set_cookie = response.headers["set-cookie"]
    assert "auth_token=" in set_cookie
    assert "Max-Age=0" in set_cookie
    assert warehouse.calls == []


@pytest.mark.asyncio
async def test_missing_event_name_rejected_before_query(api, warehouse, session_cookie):
    async with _client(api) as client:
        response = await client.get("/api/rewarded-ads-cohort?startDate=2024-06-01", headers=session_cookie)

    assert response.status_code == 400
    assert response.json() == {"error": "eventName parameter is required"}
    assert len(warehouse.calls) == 0


@pytest.mark.asyncio
async def test_missing_ad_format_rejected_before_query(api, warehouse, session_cookie):
    async with _client(api) as client:
        response = await client.get("/api/ad-impressions-cohort?adFormat=", headers=session_cookie)

    assert response.status_code == 400
    assert response.json() == {"error": "adFormat parameter is required"}
    assert len(warehouse.calls) == 0


@pytest.mark.asyncio
async def test_malformed_date_rejected(api, warehouse, session_cookie):
    async with _client(api) as client:
        response = await client.get("/api/level-analysis?startDate=June", headers=session_cookie)

    assert response.status_code == 400
    assert "startDate" in response.json()["error"]
    assert warehouse.calls == []


@pytest.mark.asyncio
async def test_warehouse_failure_is_generic_500(api, warehouse, session_cookie):
    warehouse.error = RuntimeError("Binder Error: column event_params not found in events")

    async with _client(api) as client:
        response = await client.get("/api/booster-box-analysis", headers=session_cookie)

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}
    assert "Binder" not in response.text
    assert len(warehouse.calls) == 1


@pytest.mark.asyncio
async def test_filters_are_bound_parameters(api, warehouse, session_cookie):
    async with _client(api) as client:
        response = await client.get(
            "/api/booster-box-analysis",
            params={"startDate": "2024-06-01", "endDate": "2024-06-07", "platform": "android", "country": "all"},
            headers=session_cookie,
        )

    assert response.status_code == 200
    assert response.json() == []
    sql, params = warehouse.calls[0]
    assert "INNER JOIN user_cohorts uc" in sql
    assert set(params) == {"platform", "start_date", "end_date"}
    assert params["platform"] == "ANDROID"


@pytest.mark.asyncio
async def test_rewarded_ads_with_totals(api, warehouse, session_cookie):
    warehouse.rows = [
        {"event_name": "RV_Watched_A", "total_count": 10, "unique_users": 4, "avg_per_user": 2.5,
         "total_users": 10, "avg_per_all_users": 1.0},
        {"event_name": "RV_Watched_B", "total_count": 6, "unique_users": 3, "avg_per_user": 2.0,
         "total_users": 10, "avg_per_all_users": 0.6},
    ]

    async with _client(api) as client:
        response = await client.get("/api/rewarded-ads", headers=session_cookie)

    assert response.status_code == 200
    data = response.json()
    assert [row["event_name"] for row in data["rows"]] == ["RV_Watched_A", "RV_Watched_B"]
    assert data["totals"] == {
        "event_name": "TOTAL",
        "total_count": 16,
        "unique_users": 7,
        "avg_per_user": 2.29,
        "total_users": 10,
        "avg_per_all_users": 1.6,
    }


@pytest.mark.asyncio
async def test_empty_rewarded_ads_has_null_totals(api, session_cookie):
    async with _client(api) as client:
        response = await client.get("/api/rewarded-ads", headers=session_cookie)

    assert response.status_code == 200
    assert response.json() == {"rows": [], "totals": None}


@pytest.mark.asyncio
async def test_empty_overall_stats_is_all_null(api, session_cookie):
    async with _client(api) as client:
        response = await client.get("/api/overall-stats", headers=session_cookie)

    assert response.status_code == 200
    assert set(response.json().values()) == {None}


@pytest.mark.asyncio
async def test_unit_loadout_is_split(api, warehouse, session_cookie):
    warehouse.rows = [
        {"result_type": "top_loadouts", "name": "1 - Tank,2 - Scout", "usage_count": 4, "additional_info": None},
        {"result_type": "unit_frequency", "name": "1 - Tank", "usage_count": 4, "additional_info": 1},
    ]

    async with _client(api) as client:
        response = await client.get("/api/unit-loadout-analysis?level=3", headers=session_cookie)

    assert response.status_code == 200
    data = response.json()
    assert [row["name"] for row in data["unitFrequency"]] == ["1 - Tank"]
    assert [row["name"] for row in data["topLoadouts"]] == ["1 - Tank,2 - Scout"]
    assert warehouse.calls[0][1] == {"level": 3}


@pytest.mark.asyncio
async def test_cohort_rows_are_returned(api, warehouse, session_cookie):
    warehouse.rows = [{"install_date": "2024-06-01", "cohort_size": 3, "day_0_events": 5, "day_0_users": 3}]

    async with _client(api) as client:
        response = await client.get("/api/rewarded-ads-cohort?eventName=RV_Watched_%25", headers=session_cookie)

    assert response.status_code == 200
    row = response.json()[0]
    assert row["day_0_events"] == 5
    assert row["day_90_events"] == 0
    sql, params = warehouse.calls[0]
    assert params == {"event_name": "RV_Watched_%"}
    assert "event_name LIKE $event_name" in sql


@pytest.mark.asyncio
async def test_negative_level_count_rejected(api, warehouse, session_cookie):
    async with _client(api) as client:
        response = await client.get("/api/churn-analysis?levelCount=-1", headers=session_cookie)

    assert response.status_code == 400
    assert response.json() == {"error": "levelCount must be a non-negative integer"}
    assert warehouse.calls == []


@pytest.mark.asyncio
async def test_level_only_parsed_by_loadout_report(api, warehouse, session_cookie):
    async with _client(api) as client:
        ignored = await client.get("/api/rewarded-ads?level=abc", headers=session_cookie)
        rejected = await client.get("/api/unit-loadout-analysis?level=abc", headers=session_cookie)

    assert ignored.status_code == 200
    assert rejected.status_code == 400
    assert rejected.json() == {"error": "level must be an integer"}
    assert len(warehouse.calls) == 1


class ExhaustedLimiter:
    rate = 1
    period = 60

    def is_allowed(self, key):
        return False


@pytest.mark.asyncio
async def test_rate_limited_response_carries_cors_headers(api, warehouse, session_cookie):
    origin = settings.cors_origin_list[0]
    api.state.rate_limiter = ExhaustedLimiter()
    try:
        async with _client(api) as client:
            response = await client.get("/api/overall-stats", headers={**session_cookie, "Origin": origin})
    finally:
        api.state.rate_limiter = None

    assert response.status_code == 429
    assert response.headers["access-control-allow-origin"] == origin
    assert response.headers["retry-after"] == "60"
    assert warehouse.calls == []

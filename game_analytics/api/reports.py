# GET /api/* reports

from fastapi import APIRouter, Depends, Query
from starlette.concurrency import run_in_threadpool
from typing import List, Optional

from game_analytics.core.config import settings
from game_analytics.core.warehouse import Warehouse, get_warehouse
from game_analytics.middleware.auth import require_session
from game_analytics.schemas.analytics import (
    BaseStationRow,
    BoosterBoxRow,
    ChurnRow,
    CountryRow,
    DayBucketRow,
    LevelAnalysisRow,
    OverallStats,
    RewardedAdsResponse,
    SilverCoinBoostRow,
    UnitLoadoutResponse,
    UnitUpgradeRow,
    VersionRow,
)
from game_analytics.services.analytics import AnalyticsService
from game_analytics.services.filters import ReportFilter

router = APIRouter(prefix="/api", tags=["reports"], dependencies=[Depends(require_session)])


def report_filter(
        start_date: Optional[str] = Query(None, alias="startDate", description="Cohort window start (YYYY-MM-DD)"),
        end_date: Optional[str] = Query(None, alias="endDate", description="Cohort window end (YYYY-MM-DD)"),
        platform: Optional[str] = Query(None, description="all, ios or android"),
        country: Optional[str] = Query(None, description="Country name or 'all'"),
        version: Optional[str] = Query(None, description="App version or 'all'"),
        level_count: Optional[str] = Query(None, alias="levelCount", description="Number of levels (default 50)")
) -> ReportFilter:
    """Filters shared by every report"""
    return ReportFilter.from_query(
        start_date=start_date,
        end_date=end_date,
        platform=platform,
        country=country,
        version=version,
        level_count=level_count,
    )


def loadout_filter(
        f: ReportFilter = Depends(report_filter),
        level: Optional[str] = Query(None, description="Single level or 'all'")
) -> ReportFilter:
    return f.with_level(level)


def get_analytics_service(warehouse: Warehouse = Depends(get_warehouse)) -> AnalyticsService:
    return AnalyticsService(warehouse, settings.events_table)


@router.get("/rewarded-ads", response_model=RewardedAdsResponse)
async def get_rewarded_ads(
        f: ReportFilter = Depends(report_filter),
        service: AnalyticsService = Depends(get_analytics_service)
):
    """
    Rewarded ad views per ad placement, plus a TOTAL row.

    With **startDate**/**endDate** only users acquired in that window count.
    """
    return await run_in_threadpool(service.get_rewarded_ads, f)


@router.get("/level-analysis", response_model=List[LevelAnalysisRow])
async def get_level_analysis(
        f: ReportFilter = Depends(report_filter),
        service: AnalyticsService = Depends(get_analytics_service)
):
    """
    Completion rate and attempts per level.

    - **levelCount**: number of levels to return (default 50)
    """
    return await run_in_threadpool(service.get_level_analysis, f)


@router.get("/level-silver-coin-boost", response_model=List[SilverCoinBoostRow])
async def get_level_silver_coin_boost(
        f: ReportFilter = Depends(report_filter),
        service: AnalyticsService = Depends(get_analytics_service)
):
    """Completion rates with and without a silver coin boost watched beforehand"""
    return await run_in_threadpool(service.get_level_silver_coin_boost, f)


@router.get("/unit-loadout-analysis", response_model=UnitLoadoutResponse)
async def get_unit_loadout_analysis(
        f: ReportFilter = Depends(loadout_filter),
        service: AnalyticsService = Depends(get_analytics_service)
):
    """
    Unit usage in battle loadouts and the 20 most common loadouts.

    - **level**: restrict to one level ('all' for every level)
    """
    return await run_in_threadpool(service.get_unit_loadout, f)


@router.get("/unit-upgrade-analysis", response_model=List[UnitUpgradeRow])
async def get_unit_upgrade_analysis(
        f: ReportFilter = Depends(report_filter),
        service: AnalyticsService = Depends(get_analytics_service)
):
    return await run_in_threadpool(service.get_unit_upgrades, f)


@router.get("/churn-analysis", response_model=List[ChurnRow])
async def get_churn_analysis(
        f: ReportFilter = Depends(report_filter),
        service: AnalyticsService = Depends(get_analytics_service)
):
    """Users reaching and leaving each level, with failure rate and difficulty"""
    return await run_in_threadpool(service.get_churn, f)


@router.get("/booster-box-analysis", response_model=List[BoosterBoxRow])
async def get_booster_box_analysis(
        f: ReportFilter = Depends(report_filter),
        service: AnalyticsService = Depends(get_analytics_service)
):
    return await run_in_threadpool(service.get_booster_boxes, f)


@router.get("/base-station-analysis", response_model=List[BaseStationRow])
async def get_base_station_analysis(
        f: ReportFilter = Depends(report_filter),
        service: AnalyticsService = Depends(get_analytics_service)
):
    return await run_in_threadpool(service.get_base_station, f)


@router.get("/overall-stats", response_model=OverallStats)
async def get_overall_stats(
        f: ReportFilter = Depends(report_filter),
        service: AnalyticsService = Depends(get_analytics_service)
):
    return await run_in_threadpool(service.get_overall_stats, f)


@router.get("/available-countries", response_model=List[CountryRow])
async def get_available_countries(
        f: ReportFilter = Depends(report_filter),
        service: AnalyticsService = Depends(get_analytics_service)
):
    """Top 100 countries by user count (ignores the country filter)"""
    return await run_in_threadpool(service.get_available_countries, f)


@router.get("/available-versions", response_model=List[VersionRow])
async def get_available_versions(
        f: ReportFilter = Depends(report_filter),
        service: AnalyticsService = Depends(get_analytics_service)
):
    """Latest 50 app versions with user counts (ignores the version filter)"""
    return await run_in_threadpool(service.get_available_versions, f)


@router.get("/rewarded-ads-cohort", response_model=List[DayBucketRow])
async def get_rewarded_ads_cohort(
        f: ReportFilter = Depends(report_filter),
        event_name: Optional[str] = Query(None, alias="eventName", description="Event name, '%' for wildcard"),
        service: AnalyticsService = Depends(get_analytics_service)
):
    """
    Rewarded ad events per install date at fixed days since install.

    - **eventName**: required; `RV_Watched_%` matches every rewarded ad
    """
    return await run_in_threadpool(service.get_rewarded_ads_cohort, f, event_name)


@router.get("/ad-impressions-cohort", response_model=List[DayBucketRow])
async def get_ad_impressions_cohort(
        f: ReportFilter = Depends(report_filter),
        ad_format: Optional[str] = Query(None, alias="adFormat", description="Ad format, e.g. 'interstitial'"),
        service: AnalyticsService = Depends(get_analytics_service)
):
    """
    Ad impressions of one format per install date at fixed days since install.

    - **adFormat**: required
    """
    return await run_in_threadpool(service.get_ad_impressions_cohort, f, ad_format)

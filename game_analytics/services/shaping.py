"""Turn warehouse row sets into the JSON contracts the dashboard reads."""

from typing import Any, Dict, List, Optional

from pydantic import TypeAdapter

from game_analytics.schemas.analytics import (
    FrequencyRow,
    LoadoutResultRow,
    LoadoutRow,
    RewardedAdRow,
    RewardedAdsResponse,
    UnitLoadoutResponse,
)

TOTAL_EVENT_NAME = "TOTAL"

_loadout_rows = TypeAdapter(List[LoadoutResultRow])


def _ratio(numerator: float, denominator: Optional[float]) -> Optional[float]:
    if not denominator:
        return None
    return round(numerator / denominator, 2)


def rewarded_ads_totals(rows: List[Dict[str, Any]]) -> Optional[RewardedAdRow]:
    """
    Synthetic TOTAL row across every rewarded-ad event.

    ``unique_users`` is the plain sum over events, so a user who watched two
    kinds of ad is counted twice. Dashboards are calibrated to that number.
    """
    if not rows:
        return None

    total_count = sum(row["total_count"] or 0 for row in rows)
    unique_users = sum(row["unique_users"] or 0 for row in rows)
    total_users = rows[0].get("total_users") or 0

    return RewardedAdRow(
        event_name=TOTAL_EVENT_NAME,
        total_count=total_count,
        unique_users=unique_users,
        avg_per_user=_ratio(total_count, unique_users),
        total_users=total_users,
        avg_per_all_users=_ratio(total_count, total_users),
    )


def rewarded_ads_response(rows: List[Dict[str, Any]]) -> RewardedAdsResponse:
    return RewardedAdsResponse(
        rows=[RewardedAdRow(**row) for row in rows],
        totals=rewarded_ads_totals(rows),
    )


def split_unit_loadout(rows: List[Dict[str, Any]]) -> UnitLoadoutResponse:
    """Split the tagged union result set, keeping each stream's own order"""
    unit_frequency: List[FrequencyRow] = []
    top_loadouts: List[LoadoutRow] = []

    for row in _loadout_rows.validate_python(rows):
        if isinstance(row, FrequencyRow):
            unit_frequency.append(row)
        else:
            top_loadouts.append(row)

    return UnitLoadoutResponse(unitFrequency=unit_frequency, topLoadouts=top_loadouts)


def first_row(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    return rows[0] if rows else {}

"""KWPilot: Google Ads Reports.

GAQL-backed report fetchers. Each returns plain dicts ready to cache and
serve; costs stay in micros.
"""

from typing import Any, Dict, List

from kwpilot.connectors.google_ads.client import GoogleAdsClient, get_account_name
from kwpilot.core.logging import get_logger

logger = get_logger("google_ads.reports")

DATE_RANGES = {
    "today": "TODAY",
    "yesterday": "YESTERDAY",
    "last_7_days": "LAST_7_DAYS",
    "last_14_days": "LAST_14_DAYS",
    "last_30_days": "LAST_30_DAYS",
    "this_month": "THIS_MONTH",
    "last_month": "LAST_MONTH",
}
DEFAULT_DATE_RANGE = "last_30_days"

RECOMMENDATION_CATEGORIES = {
    "KEYWORD": "Keywords",
    "USE_BROAD_MATCH_KEYWORD": "Keywords",
    "KEYWORD_MATCH_TYPE": "Keywords",
    "SEARCH_PARTNERS_OPT_IN": "Keywords",
    "CAMPAIGN_BUDGET": "Budget",
    "FORECASTING_CAMPAIGN_BUDGET": "Budget",
    "MOVE_UNUSED_BUDGET": "Budget",
    "MARGINAL_ROI_CAMPAIGN_BUDGET": "Budget",
    "TARGET_CPA_OPT_IN": "Bidding",
    "TARGET_ROAS_OPT_IN": "Bidding",
    "MAXIMIZE_CONVERSIONS_OPT_IN": "Bidding",
    "MAXIMIZE_CLICKS_OPT_IN": "Bidding",
    "ENHANCED_CPC_OPT_IN": "Bidding",
    "RAISE_TARGET_CPA_BID_TOO_LOW": "Bidding",
    "RESPONSIVE_SEARCH_AD": "Ads",
    "RESPONSIVE_SEARCH_AD_ASSET": "Ads",
    "RESPONSIVE_SEARCH_AD_IMPROVE_AD_STRENGTH": "Ads",
    "TEXT_AD": "Ads",
    "SITELINK_ASSET": "Assets",
    "CALLOUT_ASSET": "Assets",
    "CALL_ASSET": "Assets",
    "LEAD_FORM_ASSET": "Assets",
    "IMAGE_ASSET": "Assets",
    "OPTIMIZE_AD_ROTATION": "Ads",
    "PERFORMANCE_MAX_OPT_IN": "Campaigns",
    "UPGRADE_SMART_SHOPPING_CAMPAIGN_TO_PERFORMANCE_MAX": "Campaigns",
}


def gaql_date_range(date_range: str) -> str:
    return DATE_RANGES.get((date_range or "").lower(), DATE_RANGES[DEFAULT_DATE_RANGE])


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def calculate_totals(campaigns: List[Dict[str, Any]]) -> Dict[str, Any]:
    totals = {
        "impressions": sum(c["impressions"] for c in campaigns),
        "clicks": sum(c["clicks"] for c in campaigns),
        "cost_micros": sum(c["cost_micros"] for c in campaigns),
        "conversions": sum(c["conversions"] for c in campaigns),
        "conversions_value": sum(c["conversions_value"] for c in campaigns),
    }
    totals["ctr"] = (
        totals["clicks"] / totals["impressions"] * 100 if totals["impressions"] else 0.0
    )
    totals["average_cpc"] = totals["cost_micros"] / totals["clicks"] if totals["clicks"] else 0.0
    totals["cost_per_conversion"] = (
        totals["cost_micros"] / totals["conversions"] if totals["conversions"] else 0.0
    )
    return totals


# ── Campaign Performance ──


async def get_campaign_performance(
    client: GoogleAdsClient, customer_id: str, date_range: str = DEFAULT_DATE_RANGE
) -> List[Dict[str, Any]]:
    query = f"""
        SELECT
          campaign.id,
          campaign.name,
          campaign.status,
          campaign.advertising_channel_type,
          campaign.bidding_strategy_type,
          campaign_budget.amount_micros,
          metrics.impressions,
          metrics.clicks,
          metrics.ctr,
          metrics.average_cpc,
          metrics.cost_micros,
          metrics.conversions,
          metrics.conversions_value
        FROM campaign
        WHERE segments.date DURING {gaql_date_range(date_range)}
          AND campaign.status != 'REMOVED'
        ORDER BY metrics.cost_micros DESC
    """
    rows = await client.search(customer_id, query)
    campaigns = []
    for row in rows:
        campaign = row.get("campaign", {})
        metrics = row.get("metrics", {})
        campaigns.append(
            {
                "id": str(campaign.get("id", "")),
                "name": campaign.get("name", ""),
                "status": campaign.get("status", ""),
                "channel_type": campaign.get("advertisingChannelType", ""),
                "bidding_strategy": campaign.get("biddingStrategyType", ""),
                "budget_micros": _int(row.get("campaignBudget", {}).get("amountMicros")),
                "impressions": _int(metrics.get("impressions")),
                "clicks": _int(metrics.get("clicks")),
                "ctr": _float(metrics.get("ctr")) * 100,
                "average_cpc": _float(metrics.get("averageCpc")),
                "cost_micros": _int(metrics.get("costMicros")),
                "conversions": _float(metrics.get("conversions")),
                "conversions_value": _float(metrics.get("conversionsValue")),
            }
        )
    logger.info(f"📊 {len(campaigns)} campaigns for {customer_id} ({date_range})")
    return campaigns


# ── Recommendations ──


async def get_recommendations(client: GoogleAdsClient, customer_id: str) -> List[Dict[str, Any]]:
    query = """
        SELECT
          recommendation.resource_name,
          recommendation.type,
          recommendation.campaign,
          recommendation.dismissed,
          recommendation.impact
        FROM recommendation
        WHERE recommendation.dismissed = FALSE
    """
    rows = await client.search(customer_id, query)
    recommendations = []
    for row in rows:
        rec = row.get("recommendation", {})
        impact = rec.get("impact", {})
        base = impact.get("baseMetrics", {})
        potential = impact.get("potentialMetrics", {})
        rec_type = rec.get("type", "UNKNOWN")
        recommendations.append(
            {
                "resource_name": rec.get("resourceName", ""),
                "type": rec_type,
                "category": RECOMMENDATION_CATEGORIES.get(rec_type, "Other"),
                "campaign": rec.get("campaign"),
                "impact": {
                    "base_clicks": _float(base.get("clicks")),
                    "potential_clicks": _float(potential.get("clicks")),
                    "base_conversions": _float(base.get("conversions")),
                    "potential_conversions": _float(potential.get("conversions")),
                    "base_cost_micros": _int(base.get("costMicros")),
                    "potential_cost_micros": _int(potential.get("costMicros")),
                },
            }
        )
    return recommendations


def summarize_recommendations(recommendations: List[Dict[str, Any]]) -> Dict[str, Any]:
    by_category: Dict[str, int] = {}
    for r in recommendations:
        by_category[r["category"]] = by_category.get(r["category"], 0) + 1
    return {
        "total": len(recommendations),
        "by_category": by_category,
        "potential_clicks": sum(
            r["impact"]["potential_clicks"] - r["impact"]["base_clicks"] for r in recommendations
        ),
        "potential_conversions": sum(
            r["impact"]["potential_conversions"] - r["impact"]["base_conversions"]
            for r in recommendations
        ),
    }


# ── Optimization Score ──


async def get_optimization_score(client: GoogleAdsClient, customer_id: str) -> Dict[str, Any]:
    query = """
        SELECT
          customer.descriptive_name,
          customer.optimization_score,
          customer.optimization_score_weight
        FROM customer
    """
    rows = await client.search(customer_id, query, max_pages=1)
    customer = rows[0].get("customer", {}) if rows else {}
    score = customer.get("optimizationScore")
    return {
        "score": round(_float(score) * 100) if score is not None else None,
        "uplift": round((1 - _float(score)) * 100) if score is not None else None,
        "weight": _float(customer.get("optimizationScoreWeight")),
        "account_name": customer.get("descriptiveName") or get_account_name(customer_id),
    }


# ── Keyword Quality Scores ──


async def get_keyword_quality_scores(
    client: GoogleAdsClient, customer_id: str, limit: int = 100
) -> List[Dict[str, Any]]:
    query = f"""
        SELECT
          ad_group_criterion.keyword.text,
          ad_group_criterion.keyword.match_type,
          ad_group_criterion.quality_info.quality_score,
          ad_group_criterion.quality_info.creative_quality_score,
          ad_group_criterion.quality_info.post_click_quality_score,
          ad_group_criterion.quality_info.search_predicted_ctr,
          ad_group.name,
          campaign.name
        FROM keyword_view
        WHERE ad_group_criterion.status != 'REMOVED'
          AND ad_group_criterion.quality_info.quality_score > 0
        ORDER BY ad_group_criterion.quality_info.quality_score ASC
        LIMIT {int(limit)}
    """
    rows = await client.search(customer_id, query, max_pages=1)
    results = []
    for row in rows:
        criterion = row.get("adGroupCriterion", {})
        quality = criterion.get("qualityInfo", {})
        keyword = criterion.get("keyword", {})
        results.append(
            {
                "keyword": keyword.get("text", ""),
                "match_type": keyword.get("matchType", ""),
                "quality_score": _int(quality.get("qualityScore")),
                "ad_relevance": quality.get("creativeQualityScore"),
                "landing_page_experience": quality.get("postClickQualityScore"),
                "expected_ctr": quality.get("searchPredictedCtr"),
                "ad_group": row.get("adGroup", {}).get("name", ""),
                "campaign": row.get("campaign", {}).get("name", ""),
            }
        )
    return results


# ── Account Summary ──


async def get_account_summary(
    client: GoogleAdsClient, customer_id: str, date_range: str = DEFAULT_DATE_RANGE
) -> Dict[str, Any]:
    """Account-level rollup: campaigns, totals and recommendation count."""
    campaigns = await get_campaign_performance(client, customer_id, date_range)

    # A campaign can appear once per segment row; keep the first of each id
    unique: Dict[str, Dict[str, Any]] = {}
    for c in campaigns:
        unique.setdefault(c["id"], c)
    deduped = list(unique.values())

    recommendations = await get_recommendations(client, customer_id)
    return {
        "account_name": get_account_name(customer_id),
        "date_range": date_range,
        "total_campaigns": len(deduped),
        "active_campaigns": sum(1 for c in deduped if c["status"] == "ENABLED"),
        "totals": calculate_totals(deduped),
        "recommendation_count": len(recommendations),
    }

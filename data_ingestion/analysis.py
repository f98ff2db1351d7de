"""
Data Ingestion - Index Analysis.

============================================================
RESPONSIBILITY
============================================================
Summaries over stored feed data, used by the operator report.

- Altcoin season: trend, change, average, market condition
- Fear and greed: average, trend, classification distribution
- Listings snapshot: breadth, average change, BTC dominance

Pure functions over already-loaded rows. No I/O.

============================================================
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional


# =============================================================
# ALTCOIN SEASON
# =============================================================

def get_market_condition(altcoin_index: float) -> str:
    """Map an altcoin-season index value to its market condition."""
    if altcoin_index >= 75:
        return "Strong Altcoin Season"
    if altcoin_index >= 50:
        return "Moderate Altcoin Season"
    if altcoin_index >= 25:
        return "Bitcoin Dominance"
    return "Strong Bitcoin Dominance"


def analyze_altcoin_season(points: Iterable[Any]) -> Dict[str, Any]:
    """
    Analyze altcoin-season index points.

    Args:
        points: Objects with ``timestamp`` and ``altcoin_index``
            (stored rows or AltcoinSeasonPoint), any order

    Returns:
        Dict with trend, percent_change, average, market_condition,
        latest_value and message. Empty input gives trend "unknown".
    """
    ordered = sorted(points, key=lambda p: p.timestamp)
    if not ordered:
        return {"trend": "unknown", "message": "No data available for analysis"}

    values = [float(p.altcoin_index) for p in ordered]
    first, last = values[0], values[-1]
    change = last - first
    percent_change = (change / first) * 100 if first else None

    if change > 0:
        trend = "upward"
    elif change < 0:
        trend = "downward"
    else:
        trend = "neutral"

    condition = get_market_condition(last)
    return {
        "trend": trend,
        "percent_change": round(percent_change, 2) if percent_change is not None else None,
        "average": round(sum(values) / len(values), 2),
        "market_condition": condition,
        "latest_value": round(last, 2),
        "data_points": len(values),
        "message": f"The altcoin index is at {last:.2f}, indicating {condition}.",
    }


# =============================================================
# FEAR AND GREED
# =============================================================

def analyze_sentiment(points: Iterable[Any]) -> Dict[str, Any]:
    """
    Analyze fear-and-greed points.

    Args:
        points: Objects with ``timestamp``, ``value`` and
            ``value_classification``, any order

    Returns:
        Dict with average, trend (increasing/decreasing/stable),
        latest_value, latest_classification, distribution and
        data_points
    """
    ordered = sorted(points, key=lambda p: p.timestamp)
    if not ordered:
        return {"trend": "unknown", "data_points": 0, "distribution": {}}

    oldest, latest = ordered[0], ordered[-1]
    if latest.value > oldest.value:
        trend = "increasing"
    elif latest.value < oldest.value:
        trend = "decreasing"
    else:
        trend = "stable"

    distribution: Dict[str, int] = {}
    for point in ordered:
        distribution[point.value_classification] = distribution.get(point.value_classification, 0) + 1

    return {
        "average": round(sum(p.value for p in ordered) / len(ordered), 2),
        "trend": trend,
        "latest_value": latest.value,
        "latest_classification": latest.value_classification,
        "distribution": distribution,
        "data_points": len(ordered),
    }


# =============================================================
# LISTINGS
# =============================================================

def _pct(part: int, total: int) -> float:
    return round(part / total * 100, 2) if total else 0.0


def analyze_market(listings: List[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Market breadth over one listings snapshot.

    Args:
        listings: Dicts as returned by
            CryptocurrencyListingsRepository.get_top_cryptocurrencies

    Returns:
        Dict with market_stats, average_change_24h, average_change_7d
        and bitcoin_dominance (None without BTC or market caps)
    """
    total = len(listings)
    if total == 0:
        return {
            "market_stats": {"total_coins": 0},
            "average_change_24h": None,
            "average_change_7d": None,
            "bitcoin_dominance": None,
        }

    changes_24h = [coin.get("percent_change_24h") or 0.0 for coin in listings]
    up = sum(1 for c in changes_24h if c > 0)
    down = sum(1 for c in changes_24h if c < 0)
    neutral = total - up - down

    bitcoin_dominance: Optional[float] = None
    btc = next((coin for coin in listings if coin.get("symbol") == "BTC"), None)
    total_market_cap = sum(coin.get("market_cap") or 0.0 for coin in listings)
    if btc is not None and btc.get("market_cap") and total_market_cap > 0:
        bitcoin_dominance = round(btc["market_cap"] / total_market_cap * 100, 2)

    return {
        "market_stats": {
            "total_coins": total,
            "up_coins": up,
            "down_coins": down,
            "neutral_coins": neutral,
            "up_percentage": _pct(up, total),
            "down_percentage": _pct(down, total),
            "market_sentiment": "bullish" if up > down else "bearish",
        },
        "average_change_24h": round(sum(changes_24h) / total, 2),
        "average_change_7d": round(
            sum(coin.get("percent_change_7d") or 0.0 for coin in listings) / total, 2
        ),
        "bitcoin_dominance": bitcoin_dominance,
    }

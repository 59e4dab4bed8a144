"""
analytics.py
============
Popup event log: recording storefront events and summarising them for the
admin dashboards.
"""

import hashlib
import json
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

import models
import schemas
from database import utcnow

logger = logging.getLogger(__name__)

TIME_RANGES = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}


def hash_ip(ip: Optional[str]) -> Optional[str]:
    if not ip:
        return None
    return hashlib.sha256(ip.encode("utf-8")).hexdigest()[:16]


def client_ip(headers: Mapping[str, str]) -> Optional[str]:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return headers.get("x-real-ip") or headers.get("cf-connecting-ip")


def record_event(
    db: Session,
    shop: str,
    event: schemas.AnalyticsEventCreate,
    user_agent: Optional[str] = None,
    ip: Optional[str] = None,
) -> models.PopupAnalytics:
    metadata = event.metadata
    if metadata is not None and not isinstance(metadata, str):
        metadata = json.dumps(metadata)

    row = models.PopupAnalytics(
        shop=shop,
        popup_id=event.popup_id,
        event_type=event.event_type.value,
        email=event.email,
        discount_code=event.discount_code,
        prize_label=event.prize_label,
        session_id=event.session_id,
        user_agent=user_agent,
        ip_address=hash_ip(ip),
        event_metadata=metadata,
        timestamp=utcnow(),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("Recorded %s event for shop=%s", row.event_type, shop)
    return row


# ─────────────────────────── Summaries ───────────────────────────

def resolve_time_range(time_range: str, now: datetime) -> datetime:
    return now - TIME_RANGES.get(time_range, TIME_RANGES["24h"])


def _rate(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return round(numerator / denominator * 100, 1)


def time_ago(when: datetime, now: datetime) -> str:
    seconds = int((now - when).total_seconds())
    if seconds < 60:
        return f"{seconds}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"


def summarize_events(events: List[models.PopupAnalytics], time_range: str, now: datetime) -> Dict[str, Any]:
    """``events`` are expected newest first, already limited to the time range."""
    counts = Counter(e.event_type for e in events)
    views = counts["view"]
    emails = counts["email_entered"]
    spins = counts["spin"]
    wins = counts["win"]
    copies = counts["copy_code"]

    hourly_data = []
    for i in range(23, -1, -1):
        hour_start = now - timedelta(hours=i)
        hour_end = hour_start + timedelta(hours=1)
        bucket = [e for e in events if hour_start <= e.timestamp < hour_end]
        hourly_data.append({
            "hour": hour_start.hour,
            "views": sum(1 for e in bucket if e.event_type == "view"),
            "emails": sum(1 for e in bucket if e.event_type == "email_entered"),
            "wins": sum(1 for e in bucket if e.event_type == "win"),
            "timestamp": hour_start,
        })

    hourly_performance: Dict[int, Dict[str, int]] = {}
    for e in events:
        slot = hourly_performance.setdefault(e.timestamp.hour, {"views": 0, "conversions": 0})
        if e.event_type == "view":
            slot["views"] += 1
        elif e.event_type == "win":
            slot["conversions"] += 1

    return {
        "summary": {
            "totalViews": views,
            "emailsEntered": emails,
            "spins": spins,
            "wins": wins,
            "loses": counts["lose"],
            "closes": counts["close"],
            "codesCopied": copies,
            "emailConversionRate": _rate(emails, views),
            "spinConversionRate": _rate(spins, emails),
            "winRate": _rate(wins, spins),
            "copyRate": _rate(copies, wins),
        },
        "hourlyData": hourly_data,
        "recentEvents": [
            {
                "id": e.id,
                "eventType": e.event_type,
                "email": e.email,
                "discountCode": e.discount_code,
                "prizeLabel": e.prize_label,
                "timestamp": e.timestamp,
                "timeAgo": time_ago(e.timestamp, now),
            }
            for e in events[:10]
        ],
        "prizeDistribution": dict(Counter(
            e.prize_label for e in events if e.event_type == "win" and e.prize_label
        )),
        "hourlyPerformance": hourly_performance,
        "timeRange": time_range if time_range in TIME_RANGES else "24h",
        "lastUpdated": now,
    }


def _events_since(db: Session, shop: str, start: datetime, popup_id: Optional[str] = None):
    query = db.query(models.PopupAnalytics).filter(
        models.PopupAnalytics.shop == shop,
        models.PopupAnalytics.timestamp >= start,
    )
    if popup_id is not None:
        query = query.filter(models.PopupAnalytics.popup_id == popup_id)
    return query.order_by(models.PopupAnalytics.timestamp.desc()).all()


def shop_analytics(db: Session, shop: str, time_range: str = "24h", now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    events = _events_since(db, shop, resolve_time_range(time_range, now))
    return summarize_events(events, time_range, now)


def popup_analytics(
    db: Session, shop: str, popup_id: str, time_range: str = "30d", now: Optional[datetime] = None
) -> Dict[str, Any]:
    now = now or utcnow()
    events = _events_since(db, shop, resolve_time_range(time_range, now), popup_id=popup_id)
    report = summarize_events(events, time_range, now)
    report["summary"]["subscribers"] = len({
        e.email for e in events if e.email and e.event_type == "email_entered"
    })
    return {
        "popupId": popup_id,
        "summary": report["summary"],
        "timeRange": report["timeRange"],
        "lastUpdated": now,
    }

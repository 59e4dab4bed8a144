"""
subscribers.py
==============
Subscriber profiles built from popup events, per request, in memory.

A subscriber is an email with at least one ``email_entered`` event for the
shop. Rows are fetched in two phases:

1. ``email_entered`` events whose email contains the search string; these
   decide who is a subscriber at all.
2. Every event and every discount code for those emails; these fill in each
   profile, so a matching subscriber always shows a complete history.

Summary counters are computed over all matching profiles, before pagination.
"""

import math
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

import models
from config import settings
from database import as_naive_utc, utcnow

EVENT_COUNTERS = {
    "view": "views",
    "email_entered": "emailEntries",
    "spin": "spins",
    "win": "wins",
    "lose": "losses",
    "copy_code": "codesCopied",
    "close": "closes",
}

SORT_KEYS = {
    "email": lambda s: s["email"].lower(),
    "firstEmailEntry": lambda s: s["firstEmailEntry"],
    "lastActivity": lambda s: s["lastActivity"],
    "totalDiscounts": lambda s: s["totalDiscounts"],
    "totalInteractions": lambda s: s["popupInteractions"]["totalInteractions"],
    "wins": lambda s: s["popupInteractions"]["wins"],
}


def _new_profile(email: str) -> Dict[str, Any]:
    return {
        "email": email,
        "firstEmailEntry": None,
        "lastActivity": None,
        "source": "popup",
        "popupInteractions": {
            "totalInteractions": 0,
            "emailEntries": 0,
            "views": 0,
            "spins": 0,
            "wins": 0,
            "losses": 0,
            "codesCopied": 0,
            "closes": 0,
        },
        "discountCodes": [],
        "totalDiscounts": 0,
        "activeDiscounts": 0,
        "userAgent": None,
        "lastSessionId": None,
        "prizesWon": [],
        "interactionHistory": [],
    }


def build_profiles(
    email_entries: Iterable[models.PopupAnalytics],
    events: Iterable[models.PopupAnalytics],
    discount_codes: Iterable[models.DiscountCode],
) -> List[Dict[str, Any]]:
    """
    One profile per email in ``email_entries``. ``events`` and
    ``discount_codes`` rows for other emails are ignored.
    """
    profiles: Dict[str, Dict[str, Any]] = {}
    for entry in sorted(email_entries, key=lambda e: e.timestamp):
        profile = profiles.setdefault(entry.email, _new_profile(entry.email))
        if profile["firstEmailEntry"] is None:
            profile["firstEmailEntry"] = entry.timestamp
        # latest entry wins
        profile["userAgent"] = entry.user_agent

    for event in sorted(events, key=lambda e: e.timestamp):
        profile = profiles.get(event.email)
        if profile is None:
            continue
        counts = profile["popupInteractions"]
        counts["totalInteractions"] += 1
        counter = EVENT_COUNTERS.get(event.event_type)
        if counter:
            counts[counter] += 1

        if profile["lastActivity"] is None or event.timestamp >= profile["lastActivity"]:
            profile["lastActivity"] = event.timestamp
            profile["lastSessionId"] = event.session_id

        profile["interactionHistory"].append({
            "type": event.event_type,
            "timestamp": event.timestamp,
            "discountCode": event.discount_code,
            "prizeLabel": event.prize_label,
            "sessionId": event.session_id,
        })
        if event.event_type == "email_entered" and event.prize_label:
            profile["prizesWon"].append({
                "prize": event.prize_label,
                "code": event.discount_code,
                "timestamp": event.timestamp,
            })

    for code in discount_codes:
        profile = profiles.get(code.email)
        if profile is None:
            continue
        profile["discountCodes"].append({
            "code": code.code,
            "type": code.discount_type,
            "value": code.discount_value,
            "usageCount": code.usage_count,
            "isActive": code.is_active,
            "createdAt": code.created_at,
            "endsAt": code.ends_at,
        })
        profile["totalDiscounts"] += 1
        if code.is_active:
            profile["activeDiscounts"] += 1

    for profile in profiles.values():
        if profile["lastActivity"] is None:
            profile["lastActivity"] = profile["firstEmailEntry"]
        profile["interactionHistory"].reverse()
        profile["prizesWon"].reverse()
    return list(profiles.values())


def sort_profiles(profiles: List[Dict[str, Any]], sort_by: str, sort_order: str) -> List[Dict[str, Any]]:
    # "timestamp" (the listing default) and unknown keys sort by last activity.
    key = SORT_KEYS.get(sort_by, SORT_KEYS["lastActivity"])
    return sorted(profiles, key=key, reverse=sort_order != "asc")


def paginate(items: List[Any], page: int, limit: int):
    total = len(items)
    offset = (page - 1) * limit
    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit) if limit else 0,
        "hasNext": offset + limit < total,
        "hasPrev": page > 1,
    }
    return items[offset:offset + limit], pagination


def summarize(profiles: List[Dict[str, Any]], now: datetime, active_days: int) -> Dict[str, int]:
    window = timedelta(days=active_days)
    return {
        "totalSubscribers": len(profiles),
        "totalDiscountCodes": sum(p["totalDiscounts"] for p in profiles),
        "totalPopupInteractions": sum(p["popupInteractions"]["totalInteractions"] for p in profiles),
        "totalEmailEntries": sum(p["popupInteractions"]["emailEntries"] for p in profiles),
        "totalWins": sum(p["popupInteractions"]["wins"] for p in profiles),
        "totalSpins": sum(p["popupInteractions"]["spins"] for p in profiles),
        "activeSubscribers": sum(
            1 for p in profiles if now - as_naive_utc(p["lastActivity"]) <= window
        ),
    }


def list_subscribers(
    db: Session,
    shop: str,
    page: int = 1,
    limit: Optional[int] = None,
    search: str = "",
    sort_by: str = "timestamp",
    sort_order: str = "desc",
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    limit = limit or settings.DEFAULT_PAGE_LIMIT
    now = now or utcnow()
    Analytics = models.PopupAnalytics

    entries_query = db.query(Analytics).filter(
        Analytics.shop == shop,
        Analytics.event_type == "email_entered",
        Analytics.email.isnot(None),
    )
    # Case-sensitive match; LIKE folds ASCII case on SQLite and MySQL.
    email_entries = [
        entry for entry in entries_query.all() if search in entry.email
    ]
    emails = {entry.email for entry in email_entries}

    events: List[models.PopupAnalytics] = []
    discount_codes: List[models.DiscountCode] = []
    if emails:
        events = db.query(Analytics).filter(
            Analytics.shop == shop, Analytics.email.in_(emails)
        ).all()
        discount_codes = (
            db.query(models.DiscountCode)
            .filter(models.DiscountCode.shop == shop, models.DiscountCode.email.in_(emails))
            .order_by(models.DiscountCode.created_at.desc())
            .all()
        )

    profiles = sort_profiles(build_profiles(email_entries, events, discount_codes), sort_by, sort_order)
    page_items, pagination = paginate(profiles, page, limit)
    return {
        "success": True,
        "subscribers": page_items,
        "pagination": pagination,
        "summary": summarize(profiles, now, settings.ACTIVE_SUBSCRIBER_DAYS),
    }

"""
test_analytics.py
=================
Tests for event recording helpers and the analytics summaries.
"""

from datetime import datetime, timedelta

import models
from analytics import (
    client_ip,
    hash_ip,
    popup_analytics,
    resolve_time_range,
    shop_analytics,
    summarize_events,
    time_ago,
)
from conftest import SHOP
from database import utcnow

NOW = datetime(2026, 10, 18, 12, 0, 0)


def event(event_type, minutes_ago=5, **extra):
    return models.PopupAnalytics(
        shop=SHOP, event_type=event_type, timestamp=NOW - timedelta(minutes=minutes_ago), **extra
    )


class TestHelpers:

    def test_hash_ip(self):
        hashed = hash_ip("203.0.113.9")
        assert len(hashed) == 16
        assert hashed == hash_ip("203.0.113.9")
        assert hashed != hash_ip("203.0.113.10")
        assert hash_ip(None) is None
        assert hash_ip("") is None

    def test_client_ip_prefers_forwarded_for(self):
        assert client_ip({"x-forwarded-for": "1.1.1.1, 10.0.0.1", "x-real-ip": "2.2.2.2"}) == "1.1.1.1"
        assert client_ip({"x-real-ip": "2.2.2.2"}) == "2.2.2.2"
        assert client_ip({"cf-connecting-ip": "3.3.3.3"}) == "3.3.3.3"
        assert client_ip({}) is None

    def test_time_ago(self):
        assert time_ago(NOW - timedelta(seconds=42), NOW) == "42s ago"
        assert time_ago(NOW - timedelta(minutes=5), NOW) == "5m ago"
        assert time_ago(NOW - timedelta(hours=3), NOW) == "3h ago"
        assert time_ago(NOW - timedelta(days=2, hours=1), NOW) == "2d ago"

    def test_resolve_time_range(self):
        assert resolve_time_range("7d", NOW) == NOW - timedelta(days=7)
        assert resolve_time_range("30d", NOW) == NOW - timedelta(days=30)
        assert resolve_time_range("bogus", NOW) == NOW - timedelta(hours=24)


class TestSummarizeEvents:

    def test_counts_and_rates(self):
        events = (
            [event("view") for _ in range(8)]
            + [event("email_entered", email="a@x.com") for _ in range(4)]
            + [event("spin") for _ in range(4)]
            + [event("win", prize_label="5% OFF") for _ in range(3)]
            + [event("lose"), event("close"), event("copy_code")]
        )
        summary = summarize_events(events, "24h", NOW)["summary"]
        assert summary["totalViews"] == 8
        assert summary["emailsEntered"] == 4
        assert summary["spins"] == 4
        assert summary["wins"] == 3
        assert summary["loses"] == 1
        assert summary["closes"] == 1
        assert summary["codesCopied"] == 1
        assert summary["emailConversionRate"] == 50.0
        assert summary["spinConversionRate"] == 100.0
        assert summary["winRate"] == 75.0
        assert summary["copyRate"] == 33.3

    def test_rates_zero_without_denominator(self):
        summary = summarize_events([event("email_entered")], "24h", NOW)["summary"]
        assert summary["emailConversionRate"] == 0.0
        assert summary["winRate"] == 0.0

    def test_hourly_data(self):
        report = summarize_events([event("view", minutes_ago=30), event("win", minutes_ago=90)], "24h", NOW)
        hourly = report["hourlyData"]
        assert len(hourly) == 24
        assert hourly[-1]["hour"] == 12
        assert hourly[-2]["views"] == 1
        assert hourly[-3]["wins"] == 1
        assert sum(h["views"] for h in hourly) == 1

    def test_recent_events_and_prizes(self):
        events = [event("win", minutes_ago=i, prize_label="5% OFF") for i in range(12)]
        events.append(event("lose", minutes_ago=20, prize_label="TRY AGAIN"))
        report = summarize_events(events, "7d", NOW)
        assert len(report["recentEvents"]) == 10
        assert report["recentEvents"][1]["timeAgo"] == "1m ago"
        assert report["prizeDistribution"] == {"5% OFF": 12}
        assert report["timeRange"] == "7d"
        assert report["lastUpdated"] == NOW

    def test_hourly_performance(self):
        events = [event("view", minutes_ago=10), event("view", minutes_ago=15), event("win", minutes_ago=20)]
        performance = summarize_events(events, "24h", NOW)["hourlyPerformance"]
        assert performance == {11: {"views": 2, "conversions": 1}}


class TestStoredAnalytics:

    def test_shop_analytics_respects_range(self, db):
        db.add(event("view", minutes_ago=10))
        db.add(event("view", minutes_ago=60 * 48))
        db.commit()
        assert shop_analytics(db, SHOP, "24h", now=NOW)["summary"]["totalViews"] == 1
        assert shop_analytics(db, SHOP, "7d", now=NOW)["summary"]["totalViews"] == 2

    def test_popup_analytics(self, db):
        db.add(event("view", popup_id="p1"))
        db.add(event("email_entered", popup_id="p1", email="a@x.com"))
        db.add(event("email_entered", popup_id="p1", email="a@x.com"))
        db.add(event("email_entered", popup_id="p1", email="b@x.com"))
        db.add(event("view", popup_id="p2"))
        db.commit()
        report = popup_analytics(db, SHOP, "p1", now=NOW)
        assert report["popupId"] == "p1"
        assert report["timeRange"] == "30d"
        assert report["summary"]["totalViews"] == 1
        assert report["summary"]["subscribers"] == 2


class TestAnalyticsApi:

    def test_shop_analytics_endpoint(self, client, db):
        db.add(models.PopupAnalytics(shop=SHOP, event_type="view", timestamp=utcnow()))
        db.commit()
        body = client.get("/api/admin/analytics", params={"timeRange": "7d"}).json()
        assert body["success"] is True
        assert body["analytics"]["summary"]["totalViews"] == 1
        assert body["analytics"]["timeRange"] == "7d"

    def test_popup_analytics_requires_id(self, client):
        assert client.get("/api/admin/popup-analytics").status_code == 400

    def test_popup_analytics_endpoint(self, client):
        resp = client.get("/api/admin/popup-analytics", params={"popupId": "p1"})
        assert resp.status_code == 200
        assert resp.json()["analytics"]["summary"]["subscribers"] == 0

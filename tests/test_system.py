"""
Tests for the health check, JSON error responses and small model helpers.
"""

from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone

pytestmark = pytest.mark.django_db


class TestHealth:
    def test_health_check_is_public(self, api_client):
        response = api_client.get(reverse("guard:health-check"))
        assert response.status_code == 200
        assert response.data["data"]["status"] == "OK"

    def test_unknown_route_is_json(self, api_client, settings):
        settings.DEBUG = False
        response = api_client.get("/api/no-such-thing/")
        assert response.status_code == 404
        assert response.json()["error"] == "Route /api/no-such-thing/ not found."

    def test_unauthenticated_request(self, api_client):
        response = api_client.get(reverse("guard:visitor-list"))
        assert response.status_code == 401
        assert response.data["success"] is False


class TestVisitorHelpers:
    def test_overstay(self, make_visitor):
        visitor = make_visitor(hours_ago=3, expected_duration=2)
        assert visitor.has_overstayed() is True
        assert visitor.has_overstayed(visitor.check_in_time + timedelta(hours=1)) is False

    def test_checked_out_never_overstays(self, make_visitor):
        visitor = make_visitor(hours_ago=10, expected_duration=1, status="CHECKED_OUT")
        assert visitor.has_overstayed() is False

    def test_duration_minutes(self, make_visitor):
        visitor = make_visitor(hours_ago=2)
        visitor.check_out_time = visitor.check_in_time + timedelta(minutes=95)
        assert visitor.duration_minutes() == 95

    def test_badge_numbers_are_unique(self, make_visitor):
        first = make_visitor("Ann One")
        second = make_visitor("Bob Two")
        assert first.badge_number
        assert first.badge_number != second.badge_number
        assert first.check_in_time < timezone.now()

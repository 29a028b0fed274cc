"""
Tests for tenant seat subscriptions.
"""

from datetime import datetime, timezone as dt_timezone

import pytest
from django.urls import reverse

from guard.models import Subscription, add_months

pytestmark = pytest.mark.django_db


class TestAddMonths:
    def test_plain_shift(self):
        start = datetime(2026, 1, 15, tzinfo=dt_timezone.utc)
        assert add_months(start, 1) == datetime(2026, 2, 15, tzinfo=dt_timezone.utc)

    def test_clamps_to_month_end(self):
        start = datetime(2026, 1, 31, tzinfo=dt_timezone.utc)
        assert add_months(start, 1) == datetime(2026, 2, 28, tzinfo=dt_timezone.utc)

    def test_crosses_year(self):
        start = datetime(2026, 11, 30, tzinfo=dt_timezone.utc)
        assert add_months(start, 3) == datetime(2027, 2, 28, tzinfo=dt_timezone.utc)


class TestSubscriptionModel:
    def test_activate_for_sets_limit_and_renews(self, tenant):
        subscription = Subscription.activate_for(tenant, "PROFESSIONAL", 6)
        assert subscription.member_limit == 25
        assert subscription.is_current()
        assert Subscription.objects.filter(admin=tenant).count() == 1

    def test_current_users_counts_team(self, tenant, manager, guard_user):
        assert Subscription.objects.get(admin=tenant).current_users() == 2


class TestSubscriptionEndpoints:
    def test_admin_activates_plan(self, client_for, tenant, site):
        response = client_for(tenant).post(reverse("guard:subscription-create"), {
            "plan": "enterprise", "duration_months": 12,
        }, format="json")

        assert response.status_code == 201
        assert response.data["data"]["plan"] == "ENTERPRISE"
        assert response.data["data"]["member_limit"] == 1000
        site.refresh_from_db()
        assert site.subscription_plan == "ENTERPRISE"
        assert site.subscription_status == "ACTIVE"

    def test_invalid_plan(self, client_for, tenant):
        response = client_for(tenant).post(reverse("guard:subscription-create"), {
            "plan": "platinum", "duration_months": 1,
        }, format="json")
        assert response.data["error"] == "Invalid plan."

    def test_duration_must_be_positive(self, client_for, tenant):
        response = client_for(tenant).post(reverse("guard:subscription-create"), {
            "plan": "starter", "duration_months": 0,
        }, format="json")
        assert response.data["error"] == "duration_months must be at least 1."

    def test_staff_cannot_subscribe(self, client_for, manager):
        response = client_for(manager).post(reverse("guard:subscription-create"), {
            "plan": "starter", "duration_months": 1,
        }, format="json")
        assert response.status_code == 403

    def test_admin_reads_own_subscription(self, client_for, tenant):
        data = client_for(tenant).get(reverse("guard:subscription-admin")).data["data"]
        assert data["has_subscription"] is True
        assert data["subscription"]["plan"] == "STARTER"

    def test_super_admin_lists_and_changes_status(self, client_for, super_admin, tenant, other_tenant, site):
        client = client_for(super_admin)
        listing = client.get(reverse("guard:subscription-all")).data["data"]
        assert {s["admin"]["email"] for s in listing} == {tenant.email, other_tenant.email}

        subscription = Subscription.objects.get(admin=tenant)
        response = client.put(reverse("guard:subscription-status", args=[subscription.id]), {
            "status": "canceled",
        }, format="json")
        assert response.status_code == 200
        subscription.refresh_from_db()
        assert subscription.status == "CANCELED"
        site.refresh_from_db()
        assert site.subscription_status == "INACTIVE"

    def test_invalid_status(self, client_for, super_admin, tenant):
        subscription = Subscription.objects.get(admin=tenant)
        response = client_for(super_admin).put(reverse("guard:subscription-status", args=[subscription.id]), {
            "status": "paused",
        }, format="json")
        assert response.data["error"] == "Invalid status."

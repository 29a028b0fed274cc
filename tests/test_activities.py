"""
Tests for the activity feed and role-targeted alerts.
"""

from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone

from guard.models import Activity, ActivityAlert, AlertReceipt

pytestmark = pytest.mark.django_db


@pytest.fixture
def checkin_alert(make_visitor):
    return ActivityAlert.create_visitor_alert("VISITOR_CHECKIN", make_visitor())


class TestTargeting:
    def test_visitor_alert_targets_security_roles(self, checkin_alert, guard_user, receptionist, tenant):
        assert checkin_alert.targets(guard_user)
        assert checkin_alert.targets(tenant)
        assert not checkin_alert.targets(receptionist)

    def test_direct_user_target(self, site, receptionist):
        alert = ActivityAlert.create_system_alert("Hello", "Just you", site, target_roles=["ADMIN"])
        alert.target_users.add(receptionist)
        assert alert.targets(receptionist)

    def test_super_admin_is_not_matched_by_admin_role(self, site, super_admin):
        alert = ActivityAlert.create_system_alert("Tenant only", "x", site, target_roles=["ADMIN"])
        assert not alert.targets(super_admin)
        assert not ActivityAlert.objects.filter(ActivityAlert.targeting(super_admin)).exists()


class TestAlertEndpoints:
    def test_unread_list_and_count(self, client_for, guard_user, receptionist, checkin_alert):
        data = client_for(guard_user).get(reverse("guard:alert-list")).data["data"]
        assert [a["id"] for a in data["results"]] == [str(checkin_alert.id)]
        assert data["unread_count"] == 1
        assert data["results"][0]["is_read"] is False

        hidden = client_for(receptionist).get(reverse("guard:alert-list")).data["data"]
        assert hidden["results"] == []

    def test_read_is_per_user(self, client_for, guard_user, manager, checkin_alert):
        response = client_for(guard_user).put(reverse("guard:alert-read", args=[checkin_alert.id]))
        assert response.data["data"]["is_read"] is True
        assert client_for(guard_user).get(reverse("guard:alert-list")).data["data"]["unread_count"] == 0
        assert client_for(manager).get(reverse("guard:alert-list")).data["data"]["unread_count"] == 1

    def test_expired_alerts_not_listed(self, client_for, guard_user, checkin_alert):
        ActivityAlert.objects.filter(pk=checkin_alert.pk).update(expires_at=timezone.now() - timedelta(minutes=1))
        data = client_for(guard_user).get(reverse("guard:alert-list"), {"status": "all"}).data["data"]
        assert data["results"] == []

    def test_untargeted_user_cannot_read(self, client_for, receptionist, checkin_alert):
        response = client_for(receptionist).put(reverse("guard:alert-read", args=[checkin_alert.id]))
        assert response.status_code == 403
        assert response.data["error"] == "Not authorized to access this alert"

    def test_acknowledge_with_note(self, client_for, guard_user, checkin_alert):
        client_for(guard_user).put(reverse("guard:alert-acknowledge", args=[checkin_alert.id]), {
            "note": "Seen at gate",
        }, format="json")
        checkin_alert.refresh_from_db()
        assert checkin_alert.status == "ACKNOWLEDGED"
        assert AlertReceipt.objects.get(alert=checkin_alert, kind="ACKNOWLEDGED").note == "Seen at gate"

    def test_dismiss_is_for_managers(self, client_for, guard_user, manager, checkin_alert):
        assert client_for(guard_user).put(reverse("guard:alert-dismiss", args=[checkin_alert.id])).status_code == 403
        assert client_for(manager).put(reverse("guard:alert-dismiss", args=[checkin_alert.id])).status_code == 200
        checkin_alert.refresh_from_db()
        assert checkin_alert.status == "DISMISSED"

    def test_cleanup_purges_old_dismissed(self, client_for, tenant, site, checkin_alert):
        old = ActivityAlert.create_system_alert("Old", "x", site)
        ActivityAlert.objects.filter(pk=old.pk).update(
            status="DISMISSED", created_at=timezone.now() - timedelta(days=40),
        )
        response = client_for(tenant).delete(reverse("guard:alert-cleanup"))
        assert response.data["data"]["deleted_count"] == 1
        assert ActivityAlert.objects.filter(pk=checkin_alert.pk).exists()


class TestActivityFeed:
    def test_recent_filters_by_type(self, client_for, tenant, site, guard_user, make_visitor):
        visitor = make_visitor()
        Activity.create_check_in(visitor, guard_user)
        Activity.create_check_out(visitor, guard_user)
        data = client_for(tenant).get(reverse("guard:activity-recent"), {"type": "checkout"}).data["data"]
        assert [a["type"] for a in data["results"]] == ["CHECKOUT"]
        assert data["results"][0]["visitor"] == {
            "id": str(visitor.id), "full_name": visitor.full_name, "badge_number": visitor.badge_number,
        }

    def test_feed_after_real_check_in(self, client_for, guard_user, gate):
        client = client_for(guard_user)
        response = client.post(reverse("guard:visitor-checkin"), {
            "full_name": "Fay Feed", "email": "fay@feed.test", "phone": "+15551110000",
            "company": "Feedco", "purpose": "Audit", "access_point": str(gate.id),
        }, format="json")
        assert response.status_code == 201

        response = client.get(reverse("guard:activity-recent"), {"type": "checkin"})
        assert response.status_code == 200
        checkin = response.data["data"]["results"][0]
        assert checkin["type"] == "CHECKIN"
        assert checkin["visitor"]["full_name"] == "Fay Feed"

    def test_stats(self, client_for, guard_user, make_visitor, checkin_alert):
        Activity.create_check_in(make_visitor("Second Guest"), guard_user)
        data = client_for(guard_user).get(reverse("guard:activity-stats"), {"time_range": "week"}).data["data"]
        assert data["activities_by_type"] == {"CHECKIN": 1}
        assert data["alerts_by_severity"] == {"INFO": 1}
        assert data["unread_alerts"] == 1

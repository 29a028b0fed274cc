"""
Tests for visitor check-in / check-out, listings and the dashboard numbers.
"""

import json
from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone

from guard.models import Activity, ActivityAlert, BannedVisitor, Company, Visitor

pytestmark = pytest.mark.django_db


def checkin_payload(gate, **overrides):
    payload = {
        "full_name": "Carla Contractor",
        "email": "Carla@Build.test",
        "phone": "+15557776666",
        "company": "BuildCo",
        "purpose": "Electrical work",
        "access_point": str(gate.id),
        "expected_duration": 6,
        "ppe_verified": True,
    }
    payload.update(overrides)
    return payload


class TestCheckIn:
    def test_check_in_creates_visitor_and_side_effects(self, client_for, guard_user, site, gate, pushed):
        response = client_for(guard_user).post(reverse("guard:visitor-checkin"), checkin_payload(gate), format="json")

        assert response.status_code == 201
        assert response.data["message"] == "Visitor checked in successfully."
        visitor = Visitor.objects.get(email="carla@build.test")
        assert visitor.status == "CHECKED_IN"
        assert visitor.site == site
        assert visitor.checked_in_by == guard_user
        assert visitor.badge_number.startswith("V")
        assert visitor.expected_duration == 6
        assert json.loads(visitor.qr_code)["visitorId"] == str(visitor.id)

        gate.refresh_from_db()
        assert gate.current_occupancy == 1
        assert Activity.objects.filter(type="CHECKIN", visitor=visitor).exists()
        assert ActivityAlert.objects.filter(type="VISITOR_CHECKIN", visitor=visitor).exists()

        events = [(p["event"], p["broadcast"]) for p in pushed]
        assert ("visitor_activity", True) in events
        assert ("visitor_checked_in", False) in events

    def test_validation_lists_missing_fields(self, client_for, guard_user, gate):
        response = client_for(guard_user).post(reverse("guard:visitor-checkin"), {
            "full_name": "Half Done", "access_point": str(gate.id),
        }, format="json")
        assert response.status_code == 400
        assert response.data["error"] == "Validation failed."
        assert set(response.data["details"]) == {"email", "phone", "company", "purpose"}

    def test_invalid_email(self, client_for, guard_user, gate):
        response = client_for(guard_user).post(
            reverse("guard:visitor-checkin"), checkin_payload(gate, email="not-an-email"), format="json",
        )
        assert response.data["details"] == {"email": "Enter a valid email address."}

    def test_non_string_fields_are_a_validation_error(self, client_for, guard_user, gate):
        response = client_for(guard_user).post(
            reverse("guard:visitor-checkin"), checkin_payload(gate, full_name=123, company={"name": "Acme"}), format="json",
        )
        assert response.status_code == 400
        assert response.data["details"] == {"full_name": "Must be a string.", "company": "Must be a string."}
        assert not Visitor.objects.exists()

    def test_inactive_access_point(self, client_for, guard_user, gate):
        gate.is_active = False
        gate.save()
        response = client_for(guard_user).post(reverse("guard:visitor-checkin"), checkin_payload(gate), format="json")
        assert response.data["error"] == "Invalid or inactive access point"

    def test_access_point_of_another_tenant(self, client_for, guard_user, other_tenant):
        foreign_gate = other_tenant.owned_sites().get().access_points.first()
        response = client_for(guard_user).post(
            reverse("guard:visitor-checkin"), checkin_payload(foreign_gate), format="json",
        )
        assert response.status_code == 403

    def test_banned_visitor_is_refused_and_alarm_raised(self, client_for, guard_user, manager, site, gate, pushed):
        BannedVisitor.objects.create(
            full_name="Carla Contractor", reason="Theft of tools", site=site, banned_by=manager,
        )
        response = client_for(guard_user).post(reverse("guard:visitor-checkin"), checkin_payload(gate), format="json")

        assert response.status_code == 400
        assert response.data["error"] == "Visitor is banned"
        assert response.data["details"]["reason"] == "Theft of tools"
        assert response.data["details"]["banned_by"] == manager.full_name
        assert not Visitor.objects.exists()

        alert = ActivityAlert.objects.get(type="BANNED_VISITOR")
        assert alert.severity == "CRITICAL"
        assert alert.visitor is None
        assert "Carla Contractor" in alert.message
        events = {p["event"] for p in pushed}
        assert {"banned_visitor_alert", "security_alert"} <= events

    def test_ban_at_another_site_does_not_apply(self, client_for, guard_user, gate, other_tenant):
        BannedVisitor.objects.create(
            full_name="Carla Contractor", reason="Elsewhere", site=other_tenant.owned_sites().get(),
        )
        response = client_for(guard_user).post(reverse("guard:visitor-checkin"), checkin_payload(gate), format="json")
        assert response.status_code == 201

    def test_expired_ban_does_not_apply(self, client_for, guard_user, site, gate):
        BannedVisitor.objects.create(
            full_name="Carla Contractor", reason="Old", site=site,
            expiry_date=timezone.now() - timedelta(days=1),
        )
        response = client_for(guard_user).post(reverse("guard:visitor-checkin"), checkin_payload(gate), format="json")
        assert response.status_code == 201

    def test_check_in_refreshes_known_company(self, client_for, guard_user, gate):
        company = Company.objects.create(name="BuildCo", contact_email="hq@build.test", contact_phone="1")
        client_for(guard_user).post(reverse("guard:visitor-checkin"), checkin_payload(gate), format="json")
        company.refresh_from_db()
        assert company.visitor_count == 1
        assert company.last_visit is not None


class TestCheckOut:
    def test_check_out(self, client_for, receptionist, gate, make_visitor, pushed):
        visitor = make_visitor()
        response = client_for(receptionist).put(
            reverse("guard:visitor-checkout", args=[visitor.id]), {"notes": "Returned badge"}, format="json",
        )

        assert response.status_code == 200
        visitor.refresh_from_db()
        assert visitor.status == "CHECKED_OUT"
        assert visitor.checked_out_by == receptionist
        assert "Returned badge" in visitor.security_notes
        gate.refresh_from_db()
        assert gate.current_occupancy == 0
        assert Activity.objects.filter(type="CHECKOUT", visitor=visitor).exists()
        assert "visitor_checked_out" in {p["event"] for p in pushed}

    def test_double_check_out(self, client_for, guard_user, make_visitor):
        visitor = make_visitor(status="CHECKED_OUT", check_out_time=timezone.now())
        response = client_for(guard_user).put(reverse("guard:visitor-checkout", args=[visitor.id]))
        assert response.status_code == 400
        assert response.data["error"] == "Visitor is already checked out"

    def test_pending_visitor_cannot_check_out(self, client_for, guard_user, make_visitor):
        visitor = make_visitor(status="PENDING")
        response = client_for(guard_user).put(reverse("guard:visitor-checkout", args=[visitor.id]))
        assert response.data["error"] == "Visitor has not checked in"

    def test_other_tenant_cannot_check_out(self, client_for, other_tenant, make_visitor):
        visitor = make_visitor()
        response = client_for(other_tenant).put(reverse("guard:visitor-checkout", args=[visitor.id]))
        assert response.status_code == 403


class TestListings:
    def test_current_visitors(self, client_for, guard_user, make_visitor):
        inside = make_visitor("Ina Inside")
        make_visitor("Otto Out", status="CHECKED_OUT", check_out_time=timezone.now())
        response = client_for(guard_user).get(reverse("guard:visitor-current"))
        assert [v["id"] for v in response.data["data"]] == [str(inside.id)]

    def test_list_filters_and_paginates(self, client_for, tenant, make_visitor):
        make_visitor("Ann Alpha", company="Alpha Ltd")
        make_visitor("Ben Beta", company="Beta Inc")
        make_visitor("Cat Alpha", company="Alpha Ltd")

        client = client_for(tenant)
        response = client.get(reverse("guard:visitor-list"), {"company": "alpha", "limit": 1})
        data = response.data["data"]
        assert data["pagination"]["total"] == 2
        assert data["pagination"]["pages"] == 2
        assert len(data["results"]) == 1

        response = client.get(reverse("guard:visitor-list"), {"search": "ben"})
        assert [v["full_name"] for v in response.data["data"]["results"]] == ["Ben Beta"]

    def test_list_rejects_bad_date(self, client_for, tenant):
        response = client_for(tenant).get(reverse("guard:visitor-list"), {"date": "yesterday"})
        assert response.status_code == 400

    def test_list_scoped_to_tenant(self, client_for, other_tenant, make_visitor):
        make_visitor()
        response = client_for(other_tenant).get(reverse("guard:visitor-list"))
        assert response.data["data"]["results"] == []

    def test_dashboard_stats(self, client_for, guard_user, make_visitor):
        make_visitor("Over Stayer", hours_ago=5, expected_duration=1)
        make_visitor("On Time", hours_ago=0)
        response = client_for(guard_user).get(reverse("guard:visitor-stats"))
        data = response.data["data"]
        assert data["currently_on_site"] == 2
        assert data["overstayed_visitors"] == 1
        assert len(data["hourly_data"]) == 24


class TestVisitorDetail:
    def test_guard_grants_special_access(self, client_for, guard_user, make_visitor):
        visitor = make_visitor()
        response = client_for(guard_user).put(reverse("guard:visitor-detail", args=[visitor.id]), {
            "special_access": "auditor", "safety_induction_completed": True,
        }, format="json")
        assert response.status_code == 200
        visitor.refresh_from_db()
        assert visitor.special_access == "AUDITOR"
        assert visitor.authorized_by == guard_user
        assert visitor.safety_induction_date is not None

    def test_receptionist_cannot_edit(self, client_for, receptionist, make_visitor):
        visitor = make_visitor()
        response = client_for(receptionist).put(
            reverse("guard:visitor-detail", args=[visitor.id]), {"notes": "x"}, format="json",
        )
        assert response.status_code == 403

"""
Tests for tenant staff management and the subscription seat gate.
"""

import pytest
from django.urls import reverse

from guard.models import ROLE_SECURITY_GUARD, Subscription, User

from .conftest import create_staff

pytestmark = pytest.mark.django_db


def new_staff_payload(site, **overrides):
    payload = {
        "full_name": "Nick Newhire",
        "email": "nick@acme.test",
        "password": "hunter22",
        "role": "security_guard",
        "assigned_site": str(site.id),
    }
    payload.update(overrides)
    return payload


class TestCreateUser:
    def test_admin_creates_staff_for_own_site(self, client_for, tenant, site):
        response = client_for(tenant).post(reverse("guard:user-list"), new_staff_payload(site), format="json")

        assert response.status_code == 201
        assert response.data["message"] == "User created successfully."
        staff = User.objects.get(email="nick@acme.test")
        assert staff.role == ROLE_SECURITY_GUARD
        assert staff.admin == tenant
        assert staff.assigned_site == site

    def test_staff_cannot_create_users(self, client_for, manager, site):
        response = client_for(manager).post(reverse("guard:user-list"), new_staff_payload(site), format="json")
        assert response.status_code == 403

    def test_cannot_create_for_foreign_site(self, client_for, tenant, other_tenant):
        foreign = other_tenant.owned_sites().get()
        response = client_for(tenant).post(reverse("guard:user-list"), new_staff_payload(foreign), format="json")
        assert response.status_code == 403
        assert response.data["error"] == "You can only create users for your own sites"

    def test_admin_role_cannot_be_granted(self, client_for, tenant, site):
        response = client_for(tenant).post(
            reverse("guard:user-list"), new_staff_payload(site, role="admin"), format="json",
        )
        assert response.status_code == 400
        assert response.data["error"] == "Invalid role."

    def test_duplicate_email(self, client_for, tenant, site, guard_user):
        response = client_for(tenant).post(
            reverse("guard:user-list"), new_staff_payload(site, email=guard_user.email), format="json",
        )
        assert response.data["error"] == "User already exists"

    def test_no_subscription_blocks_creation(self, client_for, tenant, site):
        Subscription.objects.filter(admin=tenant).delete()
        response = client_for(tenant).post(reverse("guard:user-list"), new_staff_payload(site), format="json")
        assert response.status_code == 403
        assert response.data["error"] == "No active subscription found"

    def test_expired_subscription_blocks_creation(self, client_for, tenant, site):
        Subscription.objects.filter(admin=tenant).update(status="EXPIRED")
        response = client_for(tenant).post(reverse("guard:user-list"), new_staff_payload(site), format="json")
        assert response.status_code == 403

    def test_member_limit_reached(self, client_for, tenant, site):
        for n in range(5):
            create_staff(tenant, site, ROLE_SECURITY_GUARD, f"g{n}@acme.test", f"Guard {n}")
        response = client_for(tenant).post(reverse("guard:user-list"), new_staff_payload(site), format="json")
        assert response.status_code == 403
        assert "Member limit of 5 reached" in response.data["error"]


class TestListUsers:
    def test_admin_sees_own_staff_only(self, client_for, tenant, manager, guard_user, other_tenant):
        other_site = other_tenant.owned_sites().get()
        create_staff(other_tenant, other_site, ROLE_SECURITY_GUARD, "stranger@globex.test", "Stranger")

        response = client_for(tenant).get(reverse("guard:user-list"))
        emails = {u["email"] for u in response.data["data"]["results"]}
        assert emails == {manager.email, guard_user.email}

    def test_filter_by_role(self, client_for, tenant, manager, guard_user):
        response = client_for(tenant).get(reverse("guard:user-list"), {"role": "site_manager"})
        results = response.data["data"]["results"]
        assert [u["email"] for u in results] == [manager.email]

    def test_guard_sees_own_site_staff(self, client_for, guard_user, manager, receptionist, other_tenant):
        other_site = other_tenant.owned_sites().get()
        create_staff(other_tenant, other_site, ROLE_SECURITY_GUARD, "stranger@globex.test", "Stranger")

        response = client_for(guard_user).get(reverse("guard:user-list"))
        assert response.status_code == 200
        emails = {u["email"] for u in response.data["data"]["results"]}
        assert emails == {guard_user.email, manager.email, receptionist.email}

    def test_guard_cannot_list_foreign_site(self, client_for, guard_user, other_tenant):
        other_site = other_tenant.owned_sites().get()
        response = client_for(guard_user).get(reverse("guard:user-list"), {"siteId": str(other_site.id)})
        assert response.status_code == 403

    def test_stats(self, client_for, tenant, manager, guard_user, receptionist):
        response = client_for(tenant).get(reverse("guard:user-stats"))
        data = response.data["data"]
        assert data["total_users"] == 3
        assert data["site_managers"] == 1
        assert data["security_guards"] == 1
        assert data["receptionists"] == 1


class TestUserDetail:
    def test_admin_accounts_are_off_limits(self, client_for, manager, tenant):
        response = client_for(manager).get(reverse("guard:user-detail", args=[tenant.id]))
        assert response.status_code == 403
        assert response.data["error"] == "Access denied to admin accounts"

    def test_admin_users_cannot_be_deleted(self, client_for, tenant, other_tenant):
        response = client_for(tenant).delete(reverse("guard:user-detail", args=[other_tenant.id]))
        assert response.status_code == 400
        assert response.data["error"] == "Cannot delete admin users"

    def test_update_role(self, client_for, tenant, guard_user):
        response = client_for(tenant).put(
            reverse("guard:user-detail", args=[guard_user.id]), {"role": "receptionist"}, format="json",
        )
        assert response.status_code == 200
        guard_user.refresh_from_db()
        assert guard_user.role == "RECEPTIONIST"

    def test_delete_staff(self, client_for, tenant, guard_user):
        response = client_for(tenant).delete(reverse("guard:user-detail", args=[guard_user.id]))
        assert response.status_code == 200
        assert not User.objects.filter(pk=guard_user.pk).exists()

    def test_foreign_staff_hidden(self, client_for, tenant, other_tenant):
        other_site = other_tenant.owned_sites().get()
        stranger = create_staff(other_tenant, other_site, ROLE_SECURITY_GUARD, "s@globex.test", "Stranger")
        response = client_for(tenant).get(reverse("guard:user-detail", args=[stranger.id]))
        assert response.status_code == 403

    def test_activate_toggles(self, client_for, tenant, guard_user):
        url = reverse("guard:user-activate", args=[guard_user.id])
        client = client_for(tenant)
        assert client.put(url, {}, format="json").data["data"]["is_active"] is False
        assert client.put(url, {}, format="json").data["data"]["is_active"] is True

    def test_reset_password(self, client_for, tenant, guard_user):
        response = client_for(tenant).put(
            reverse("guard:user-reset-password", args=[guard_user.id]), {"new_password": "fresh-one"}, format="json",
        )
        assert response.status_code == 200
        guard_user.refresh_from_db()
        assert guard_user.check_password("fresh-one")

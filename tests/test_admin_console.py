"""
Tests for the super admin console: tenant admins and their subscriptions.
"""

import pytest
from django.urls import reverse

from guard.models import ROLE_ADMIN, Site, Subscription, User

pytestmark = pytest.mark.django_db


class TestAdminConsole:
    def test_only_super_admin(self, client_for, tenant):
        assert client_for(tenant).get(reverse("guard:admin-list")).status_code == 403

    def test_list_with_search(self, client_for, super_admin, tenant, other_tenant):
        client = client_for(super_admin)
        everyone = client.get(reverse("guard:admin-list")).data["data"]
        assert {a["email"] for a in everyone} == {tenant.email, other_tenant.email}

        found = client.get(reverse("guard:admin-list"), {"search": "globex"}).data["data"]
        assert [a["email"] for a in found] == [other_tenant.email]
        assert found[0]["site_count"] == 1

    def test_details_include_sites_and_team(self, client_for, super_admin, tenant, guard_user):
        data = client_for(super_admin).get(reverse("guard:admin-details", args=[tenant.id])).data["data"]
        assert [s["name"] for s in data["sites"]] == ["Acme Tower"]
        assert [u["email"] for u in data["team"]] == [guard_user.email]

    def test_register_admin(self, client_for, super_admin):
        response = client_for(super_admin).post(reverse("guard:admin-register"), {
            "full_name": "Wanda Ward", "email": "wanda@ward.test", "password": "hunter22",
            "plan": "professional", "site_name": "Ward Depot",
        }, format="json")

        assert response.status_code == 201
        admin = User.objects.get(email="wanda@ward.test")
        assert admin.role == ROLE_ADMIN
        assert Site.objects.get(admin=admin).name == "Ward Depot"
        subscription = Subscription.objects.get(admin=admin)
        assert subscription.plan == "PROFESSIONAL"
        assert subscription.member_limit == 25

    def test_register_duplicate(self, client_for, super_admin, tenant):
        response = client_for(super_admin).post(reverse("guard:admin-register"), {
            "full_name": "X", "email": tenant.email, "password": "hunter22",
        }, format="json")
        assert response.data["error"] == "User already exists"

    def test_activate_toggle_guards(self, client_for, super_admin, tenant, guard_user):
        client = client_for(super_admin)
        own = client.put(reverse("guard:admin-activate", args=[super_admin.id]), {"is_active": False}, format="json")
        assert own.data["error"] == "You cannot change your own status"

        staff = client.put(reverse("guard:admin-activate", args=[guard_user.id]), {"is_active": False}, format="json")
        assert staff.data["error"] == "User is not an admin"

        response = client.put(reverse("guard:admin-activate", args=[tenant.id]), {"is_active": False}, format="json")
        assert response.status_code == 200
        tenant.refresh_from_db()
        assert tenant.is_active is False

    def test_delete_admin_removes_subscription(self, client_for, super_admin, tenant):
        response = client_for(super_admin).delete(reverse("guard:admin-delete", args=[tenant.id]))
        assert response.status_code == 200
        assert not User.objects.filter(pk=tenant.pk).exists()
        assert not Subscription.objects.filter(admin_id=tenant.pk).exists()

    def test_cannot_delete_self_or_super_admin(self, client_for, super_admin):
        other_root = User.objects.create_user(
            email="root2@platform.test", password="x", full_name="Root Two", role="SUPER_ADMIN",
        )
        client = client_for(super_admin)
        assert client.delete(reverse("guard:admin-delete", args=[super_admin.id])).data["error"] == \
            "You cannot delete your own account"
        assert client.delete(reverse("guard:admin-delete", args=[other_root.id])).data["error"] == \
            "Cannot delete a super admin"

    def test_activate_by_email_grants_enterprise_year(self, client_for, super_admin, tenant):
        response = client_for(super_admin).post(reverse("guard:admin-activate-by-email"), {
            "email": tenant.email.upper(),
        }, format="json")
        assert response.status_code == 200
        subscription = Subscription.objects.get(admin=tenant)
        assert subscription.plan == "ENTERPRISE"
        assert (subscription.end_date - subscription.start_date).days >= 365

    def test_activate_by_email_unknown(self, client_for, super_admin):
        response = client_for(super_admin).post(reverse("guard:admin-activate-by-email"), {
            "email": "nobody@nowhere.test",
        }, format="json")
        assert response.status_code == 404

    def test_admin_subscription_get_and_put(self, client_for, super_admin, tenant):
        client = client_for(super_admin)
        url = reverse("guard:admin-subscription", args=[tenant.id])
        assert client.get(url).data["data"]["plan"] == "STARTER"

        response = client.put(url, {"plan": "professional", "duration_months": 3, "status": "expired"}, format="json")
        assert response.status_code == 200
        subscription = Subscription.objects.get(admin=tenant)
        assert subscription.plan == "PROFESSIONAL"
        assert subscription.status == "EXPIRED"

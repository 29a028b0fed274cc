"""
Tests for registration, login, token refresh, logout and the profile endpoints.
"""

import pytest
from django.urls import reverse

from guard.models import ROLE_ADMIN, AuditLog, Site, User

from .conftest import PASSWORD

pytestmark = pytest.mark.django_db


class TestRegister:
    def test_register_creates_admin_site_and_access_points(self, api_client):
        response = api_client.post(reverse("guard:auth-register"), {
            "full_name": "Nina New", "email": "Nina@New.test", "password": "hunter22",
            "site_name": "Nina Works",
        }, format="json")

        assert response.status_code == 201
        body = response.data
        assert body["success"] is True
        assert body["data"]["access"] and body["data"]["refresh"]
        assert body["data"]["site_info"]["name"] == "Nina Works"

        admin = User.objects.get(email="nina@new.test")
        assert admin.role == ROLE_ADMIN
        site = Site.objects.get(admin=admin)
        assert site.access_points.count() == 3
        assert admin.managed_sites.filter(pk=site.pk).exists()

    def test_register_without_site_name_uses_default(self, api_client):
        api_client.post(reverse("guard:auth-register"), {
            "full_name": "Paul Plain", "email": "paul@plain.test", "password": "hunter22",
        }, format="json")
        assert Site.objects.get(admin__email="paul@plain.test").name == "Paul Plain's Site"

    def test_duplicate_email_rejected(self, api_client, tenant):
        response = api_client.post(reverse("guard:auth-register"), {
            "full_name": "Again", "email": tenant.email, "password": "hunter22",
        }, format="json")
        assert response.status_code == 400
        assert response.data["error"] == "User already exists"

    def test_non_string_email_rejected(self, api_client):
        response = api_client.post(reverse("guard:auth-register"), {
            "full_name": "Nina New", "email": 42, "password": "hunter22",
        }, format="json")
        assert response.status_code == 400
        assert response.data["error"] == "Field 'email' must be a string."
        assert not User.objects.filter(full_name="Nina New").exists()

    def test_missing_fields_rejected(self, api_client):
        response = api_client.post(reverse("guard:auth-register"), {"email": "x@y.test"}, format="json")
        assert response.status_code == 400
        assert response.data["success"] is False
        assert "full_name" in response.data["details"]

    def test_short_password_rejected(self, api_client):
        response = api_client.post(reverse("guard:auth-register"), {
            "full_name": "Shorty", "email": "short@pw.test", "password": "abc",
        }, format="json")
        assert response.status_code == 400
        assert not User.objects.filter(email="short@pw.test").exists()


class TestLogin:
    def test_login_returns_tokens_site_and_subscription(self, api_client, tenant, site):
        response = api_client.post(reverse("guard:auth-login"), {
            "email": tenant.email, "password": PASSWORD,
        }, format="json")

        assert response.status_code == 200
        data = response.data["data"]
        assert response.data["message"] == "Login successful."
        assert data["user"]["role"] == ROLE_ADMIN
        assert data["site_info"]["id"] == str(site.id)
        assert data["subscription"]["plan"] == "STARTER"
        assert AuditLog.objects.filter(user=tenant, action="LOGIN").exists()

    def test_login_is_case_insensitive_on_email(self, api_client, guard_user):
        response = api_client.post(reverse("guard:auth-login"), {
            "email": "GUARD@ACME.TEST", "password": PASSWORD,
        }, format="json")
        assert response.status_code == 200

    def test_login_syncs_site_subscription_state(self, api_client, tenant, site):
        api_client.post(reverse("guard:auth-login"), {"email": tenant.email, "password": PASSWORD}, format="json")
        site.refresh_from_db()
        assert site.subscription_status == "ACTIVE"
        assert site.subscription_plan == "BASIC"

    def test_wrong_password(self, api_client, tenant):
        response = api_client.post(reverse("guard:auth-login"), {
            "email": tenant.email, "password": "nope",
        }, format="json")
        assert response.status_code == 400
        assert response.data["error"] == "Invalid credentials"

    def test_unknown_user(self, api_client, db):
        response = api_client.post(reverse("guard:auth-login"), {
            "email": "ghost@nowhere.test", "password": "whatever",
        }, format="json")
        assert response.data["error"] == "Invalid credentials"

    def test_missing_credentials(self, api_client, db):
        response = api_client.post(reverse("guard:auth-login"), {}, format="json")
        assert response.status_code == 400
        assert response.data["error"] == "Email and password are required."

    def test_deactivated_account(self, api_client, guard_user):
        guard_user.is_active = False
        guard_user.save()
        response = api_client.post(reverse("guard:auth-login"), {
            "email": guard_user.email, "password": PASSWORD,
        }, format="json")
        assert response.data["error"] == "Account is deactivated"


class TestTokens:
    def _login(self, api_client, user):
        response = api_client.post(reverse("guard:auth-login"), {
            "email": user.email, "password": PASSWORD,
        }, format="json")
        return response.data["data"]

    def test_refresh_issues_new_access_token(self, api_client, tenant):
        tokens = self._login(api_client, tenant)
        response = api_client.post(reverse("guard:auth-token-refresh"), {"refresh": tokens["refresh"]}, format="json")
        assert response.status_code == 200
        assert response.data["data"]["access"]

    def test_refresh_requires_token(self, api_client, db):
        response = api_client.post(reverse("guard:auth-token-refresh"), {}, format="json")
        assert response.status_code == 400

    def test_garbage_refresh_token_is_unauthorized(self, api_client, db):
        response = api_client.post(reverse("guard:auth-token-refresh"), {"refresh": "not-a-token"}, format="json")
        assert response.status_code == 401

    def test_bearer_token_authenticates(self, api_client, tenant):
        tokens = self._login(api_client, tenant)
        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
        response = api_client.get(reverse("guard:auth-me"))
        assert response.status_code == 200
        assert response.data["data"]["user"]["email"] == tenant.email

    def test_logout_blacklists_refresh_token(self, api_client, tenant):
        tokens = self._login(api_client, tenant)
        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
        response = api_client.post(reverse("guard:auth-logout"), {"refresh": tokens["refresh"]}, format="json")
        assert response.status_code == 200

        again = api_client.post(reverse("guard:auth-token-refresh"), {"refresh": tokens["refresh"]}, format="json")
        assert again.status_code == 401

    def test_protected_endpoint_without_token(self, api_client, db):
        response = api_client.get(reverse("guard:auth-me"))
        assert response.status_code == 401
        assert response.data["success"] is False


class TestProfile:
    def test_me_includes_subscription_for_staff(self, client_for, guard_user):
        response = client_for(guard_user).get(reverse("guard:auth-me"))
        data = response.data["data"]
        assert data["site_info"]["name"] == "Acme Tower"
        assert data["subscription"]["plan"] == "STARTER"

    def test_profile_update(self, client_for, guard_user):
        response = client_for(guard_user).put(reverse("guard:auth-profile"), {
            "full_name": "Gus G. Guard", "phone": "+15559998888",
        }, format="json")
        assert response.status_code == 200
        guard_user.refresh_from_db()
        assert guard_user.full_name == "Gus G. Guard"

    def test_profile_email_must_be_unique(self, client_for, guard_user, manager):
        response = client_for(guard_user).put(reverse("guard:auth-profile"), {"email": manager.email}, format="json")
        assert response.status_code == 400

    def test_change_password(self, client_for, guard_user):
        client = client_for(guard_user)
        response = client.put(reverse("guard:auth-change-password"), {
            "current_password": PASSWORD, "new_password": "n3w-secret",
        }, format="json")
        assert response.status_code == 200
        guard_user.refresh_from_db()
        assert guard_user.check_password("n3w-secret")

    def test_change_password_wrong_current(self, client_for, guard_user):
        response = client_for(guard_user).put(reverse("guard:auth-change-password"), {
            "current_password": "wrong", "new_password": "n3w-secret",
        }, format="json")
        assert response.data["error"] == "Current password is incorrect"

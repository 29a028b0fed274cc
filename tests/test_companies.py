"""
Tests for the visitor company directory.
"""

import pytest
from django.urls import reverse

from guard.models import Company

pytestmark = pytest.mark.django_db


@pytest.fixture
def initech(tenant):
    return Company.objects.create(
        name="Initech", contact_email="hq@initech.test", contact_phone="+15550001111", created_by=tenant,
    )


class TestCompanies:
    def test_create_with_nested_contact_and_address(self, client_for, manager):
        response = client_for(manager).post(reverse("guard:company-list"), {
            "name": "Umbrella",
            "contact_info": {"email": "Info@Umbrella.test", "phone": "+15550002222"},
            "address": {"city": "Raccoon City", "country": "USA"},
        }, format="json")

        assert response.status_code == 201
        company = Company.objects.get(name="Umbrella")
        assert company.contact_email == "info@umbrella.test"
        assert company.city == "Raccoon City"
        assert company.created_by == manager

    def test_create_counts_existing_visits(self, client_for, tenant, make_visitor):
        make_visitor(company="Umbrella")
        response = client_for(tenant).post(reverse("guard:company-list"), {
            "name": "umbrella", "contact_email": "info@umbrella.test", "contact_phone": "1",
        }, format="json")
        assert response.data["data"]["visitor_count"] == 1

    def test_name_is_unique_case_insensitively(self, client_for, tenant, initech):
        response = client_for(tenant).post(reverse("guard:company-list"), {
            "name": "INITECH", "contact_email": "x@y.test", "contact_phone": "1",
        }, format="json")
        assert response.data["error"] == "Company with this name already exists"

    def test_missing_contact(self, client_for, tenant):
        response = client_for(tenant).post(reverse("guard:company-list"), {"name": "Nobody Inc"}, format="json")
        assert response.data["error"] == "Validation failed."
        assert set(response.data["details"]) == {"contact_info.email", "contact_info.phone"}

    def test_list_search_and_status(self, client_for, tenant, initech):
        Company.objects.create(name="Hooli", contact_email="a@hooli.test", contact_phone="1", is_active=False)
        client = client_for(tenant)
        response = client.get(reverse("guard:company-list"), {"status": "inactive"})
        assert [c["name"] for c in response.data["data"]["results"]] == ["Hooli"]
        response = client.get(reverse("guard:company-list"), {"search": "init"})
        assert [c["name"] for c in response.data["data"]["results"]] == ["Initech"]

    def test_update_and_delete(self, client_for, tenant, initech):
        client = client_for(tenant)
        response = client.patch(reverse("guard:company-detail", args=[initech.id]), {
            "notes": "Preferred vendor",
        }, format="json")
        assert response.status_code == 200
        initech.refresh_from_db()
        assert initech.notes == "Preferred vendor"

        assert client.delete(reverse("guard:company-detail", args=[initech.id])).status_code == 200
        assert not Company.objects.filter(pk=initech.pk).exists()

    def test_guard_denied(self, client_for, guard_user):
        assert client_for(guard_user).get(reverse("guard:company-list")).status_code == 403

    def test_stats(self, client_for, tenant, initech):
        Company.objects.create(name="Hooli", contact_email="a@hooli.test", contact_phone="1", is_active=False,
                               visitor_count=4)
        data = client_for(tenant).get(reverse("guard:company-stats")).data["data"]
        assert data == {"total_companies": 2, "active_companies": 1, "total_visitors": 4}

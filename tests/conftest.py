"""Shared pytest fixtures for the test suite.

Import any of these in a test file by simply declaring the fixture name as a
parameter; pytest discovers them automatically from this conftest.py.

Fixture overview
----------------
tenant            — ADMIN owning one site (with the three default access
                    points) and a current STARTER subscription
site / gate       — the tenant's site and its Main Gate access point
manager           — SITE_MANAGER assigned to the site
guard_user        — SECURITY_GUARD assigned to the site
receptionist      — RECEPTIONIST assigned to the site
super_admin       — platform SUPER_ADMIN
other_tenant      — an unrelated tenant, used for isolation checks
client_for        — factory: APIClient force-authenticated as a given user
make_visitor      — factory: visitor already checked in at the gate
pushed            — every emit() call made by the views, as a list of dicts

Outbound integrations are blanked for every test and emit() is captured, so
nothing leaves the process.
"""

from datetime import timedelta

import pytest
from django.core.cache import cache
from django.utils import timezone
from rest_framework.test import APIClient

from guard.models import (
    ROLE_ADMIN, ROLE_RECEPTIONIST, ROLE_SECURITY_GUARD, ROLE_SITE_MANAGER, ROLE_SUPER_ADMIN,
    Site, Subscription, User, Visitor,
)

PASSWORD = "secret123"


# ── Environment ─────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _quiet_integrations(settings):
    """No SendGrid, Twilio or Stripe credentials unless a test sets them."""
    settings.SENDGRID_API_KEY = ""
    settings.TWILIO_ACCOUNT_SID = ""
    settings.TWILIO_AUTH_TOKEN = ""
    settings.TWILIO_FROM_NUMBER = ""
    settings.STRIPE_SECRET_KEY = ""
    settings.STRIPE_WEBHOOK_SECRET = ""
    settings.CLIENT_URL = "http://client.test"
    settings.CHANNEL_LAYERS = {"default": {"BACKEND": "channels.layers.InMemoryChannelLayer"}}


@pytest.fixture(autouse=True)
def _fresh_throttle_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture(autouse=True)
def pushed(monkeypatch):
    """Capture realtime pushes made by the views instead of sending them."""
    calls = []

    def fake_emit(event, payload, site_id=None, broadcast=True):
        calls.append({"event": event, "data": payload, "site_id": site_id, "broadcast": broadcast})

    monkeypatch.setattr("guard.views.emit", fake_emit)
    return calls


# ── People and places ───────────────────────────────────────────────────────


def create_tenant(email, full_name, site_name, plan="STARTER"):
    admin = User.objects.create_user(
        email=email, password=PASSWORD, full_name=full_name, role=ROLE_ADMIN, phone="+15550000001",
    )
    site = Site.objects.create(
        name=site_name, address="1 Main St", city="Springfield", state="IL", zip_code="62701",
        admin=admin, emergency_phone="+15550000999",
    )
    site.create_default_access_points()
    admin.managed_sites.add(site)
    if plan:
        Subscription.activate_for(admin, plan, 1)
    return admin


def create_staff(tenant, site, role, email, full_name, phone=""):
    return User.objects.create_user(
        email=email, password=PASSWORD, full_name=full_name, role=role,
        assigned_site=site, admin=tenant, phone=phone,
    )


@pytest.fixture
def tenant(db):
    return create_tenant("owner@acme.test", "Olive Owner", "Acme Tower")


@pytest.fixture
def site(tenant):
    return tenant.owned_sites().get()


@pytest.fixture
def gate(site):
    return site.access_points.get(type="MAIN_GATE")


@pytest.fixture
def manager(tenant, site):
    return create_staff(tenant, site, ROLE_SITE_MANAGER, "manager@acme.test", "Mona Manager", "+15550000002")


@pytest.fixture
def guard_user(tenant, site):
    return create_staff(tenant, site, ROLE_SECURITY_GUARD, "guard@acme.test", "Gus Guard", "+15550000003")


@pytest.fixture
def receptionist(tenant, site):
    return create_staff(tenant, site, ROLE_RECEPTIONIST, "desk@acme.test", "Rita Desk")


@pytest.fixture
def super_admin(db):
    return User.objects.create_user(
        email="root@platform.test", password=PASSWORD, full_name="Sam Super", role=ROLE_SUPER_ADMIN,
    )


@pytest.fixture
def other_tenant(db):
    return create_tenant("owner@globex.test", "Otto Other", "Globex Yard")


# ── Clients and factories ───────────────────────────────────────────────────


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for():
    def _client(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client
    return _client


@pytest.fixture
def make_visitor(site, gate, guard_user):
    """Visitor checked in at the Main Gate `hours_ago` hours ago."""
    def _make(full_name="Vera Visitor", company="Initech", hours_ago=1, expected_duration=4, **fields):
        visitor = Visitor.objects.create(
            full_name=full_name,
            email=fields.pop("email", f"{full_name.split()[0].lower()}@visitor.test"),
            phone="+15551112222",
            company=company,
            purpose="Inspection",
            site=site,
            access_point=gate,
            status=fields.pop("status", "CHECKED_IN"),
            check_in_time=timezone.now() - timedelta(hours=hours_ago),
            expected_duration=expected_duration,
            checked_in_by=guard_user,
            **fields,
        )
        gate.update_occupancy()
        return visitor
    return _make

"""
Tests for Stripe-backed site billing. The Stripe SDK is patched throughout;
no request leaves the process.
"""

from unittest import mock

import pytest
import stripe
from django.urls import reverse

pytestmark = pytest.mark.django_db

PERIOD_START = 1767225600  # 2026-01-01T00:00:00Z
PERIOD_END = 1769904000    # 2026-02-01T00:00:00Z


@pytest.fixture
def stripe_keys(settings):
    settings.STRIPE_SECRET_KEY = "sk_test_123"
    settings.STRIPE_WEBHOOK_SECRET = "whsec_123"


def stripe_subscription(status="active", **extra):
    return {
        "id": "sub_123", "customer": "cus_123", "status": status,
        "current_period_start": PERIOD_START, "current_period_end": PERIOD_END, **extra,
    }


def post_event(api_client, event):
    with mock.patch.object(stripe.Webhook, "construct_event", return_value=event) as construct:
        response = api_client.post(
            reverse("guard:stripe-webhook"), data=b"{}", content_type="application/json",
            HTTP_STRIPE_SIGNATURE="t=1,v1=abc",
        )
    return response, construct


class TestConfiguration:
    def test_not_configured(self, client_for, tenant):
        response = client_for(tenant).post(reverse("guard:stripe-create-customer"), {}, format="json")
        assert response.status_code == 503
        assert response.data["error"] == "Stripe is not configured"

    def test_admin_only(self, client_for, manager, stripe_keys):
        response = client_for(manager).post(reverse("guard:stripe-create-customer"), {}, format="json")
        assert response.status_code == 403


class TestCustomerAndSubscription:
    def test_create_customer(self, client_for, tenant, site, stripe_keys):
        with mock.patch.object(stripe.Customer, "create", return_value={"id": "cus_123"}) as create:
            response = client_for(tenant).post(reverse("guard:stripe-create-customer"), {}, format="json")

        assert response.status_code == 201
        assert create.call_args.kwargs["email"] == tenant.email
        site.refresh_from_db()
        assert site.stripe_customer_id == "cus_123"

    def test_existing_customer_is_reused(self, client_for, tenant, site, stripe_keys):
        site.stripe_customer_id = "cus_existing"
        site.save()
        with mock.patch.object(stripe.Customer, "create") as create:
            response = client_for(tenant).post(reverse("guard:stripe-create-customer"), {}, format="json")
        assert response.status_code == 200
        create.assert_not_called()

    def test_stripe_error_is_reported(self, client_for, tenant, stripe_keys):
        with mock.patch.object(stripe.Customer, "create", side_effect=stripe.error.StripeError("card declined")):
            response = client_for(tenant).post(reverse("guard:stripe-create-customer"), {}, format="json")
        assert response.status_code == 400
        assert "card declined" in response.data["error"]

    def test_subscription_requires_customer(self, client_for, tenant, stripe_keys):
        response = client_for(tenant).post(reverse("guard:stripe-create-subscription"), {
            "priceId": "price_1",
        }, format="json")
        assert response.data["error"] == "Create a Stripe customer first"

    def test_create_subscription(self, client_for, tenant, site, stripe_keys):
        site.stripe_customer_id = "cus_123"
        site.save()
        created = stripe_subscription(
            status="incomplete",
            latest_invoice={"payment_intent": {"client_secret": "pi_secret"}},
        )
        with mock.patch.object(stripe.Subscription, "create", return_value=created):
            response = client_for(tenant).post(reverse("guard:stripe-create-subscription"), {
                "priceId": "price_1", "plan": "premium",
            }, format="json")

        assert response.status_code == 201
        assert response.data["data"]["client_secret"] == "pi_secret"
        site.refresh_from_db()
        assert site.stripe_subscription_id == "sub_123"
        assert site.subscription_plan == "PREMIUM"
        assert site.subscription_status == "INACTIVE"
        assert site.current_period_end.year == 2026

    def test_cancel_subscription(self, client_for, tenant, site, stripe_keys):
        site.stripe_customer_id = "cus_123"
        site.stripe_subscription_id = "sub_123"
        site.save()
        with mock.patch.object(
            stripe.Subscription, "modify", return_value=stripe_subscription(cancel_at_period_end=True),
        ) as modify:
            response = client_for(tenant).post(reverse("guard:stripe-cancel-subscription"), {}, format="json")

        assert response.status_code == 200
        modify.assert_called_once_with("sub_123", cancel_at_period_end=True)
        assert response.data["data"]["cancel_at_period_end"] is True

    def test_cancel_without_subscription(self, client_for, tenant, stripe_keys):
        response = client_for(tenant).post(reverse("guard:stripe-cancel-subscription"), {}, format="json")
        assert response.data["error"] == "No active subscription found"

    def test_site_subscription_refreshes_from_stripe(self, client_for, tenant, site, stripe_keys):
        site.stripe_subscription_id = "sub_123"
        site.save()
        with mock.patch.object(stripe.Subscription, "retrieve", return_value=stripe_subscription("past_due")):
            response = client_for(tenant).get(reverse("guard:stripe-site-subscription", args=[site.id]))
        assert response.data["data"]["subscription_status"] == "PAST_DUE"


class TestWebhook:
    def test_requires_webhook_secret(self, api_client, settings):
        settings.STRIPE_SECRET_KEY = "sk_test_123"
        response = api_client.post(reverse("guard:stripe-webhook"), data=b"{}", content_type="application/json")
        assert response.status_code == 503

    def test_bad_signature(self, api_client, stripe_keys):
        error = stripe.error.SignatureVerificationError("bad", "t=1,v1=abc")
        with mock.patch.object(stripe.Webhook, "construct_event", side_effect=error):
            response = api_client.post(reverse("guard:stripe-webhook"), data=b"{}", content_type="application/json")
        assert response.status_code == 400
        assert response.data["error"] == "Invalid signature"

    def test_bad_payload(self, api_client, stripe_keys):
        with mock.patch.object(stripe.Webhook, "construct_event", side_effect=ValueError("bad json")):
            response = api_client.post(reverse("guard:stripe-webhook"), data=b"nope", content_type="application/json")
        assert response.data["error"] == "Invalid payload"

    def test_signature_header_is_verified(self, api_client, site, stripe_keys):
        response, construct = post_event(api_client, {"type": "ping", "data": {"object": {}}})
        assert response.status_code == 200
        assert construct.call_args.args[1:] == ("t=1,v1=abc", "whsec_123")

    def test_subscription_created_matches_admin_by_email(self, api_client, tenant, site, stripe_keys):
        with mock.patch.object(stripe.Customer, "retrieve", return_value={"email": tenant.email.upper()}):
            response, _ = post_event(api_client, {
                "type": "customer.subscription.created", "data": {"object": stripe_subscription()},
            })
        assert response.status_code == 200
        site.refresh_from_db()
        assert site.stripe_customer_id == "cus_123"
        assert site.subscription_status == "ACTIVE"

    def test_subscription_updated(self, api_client, site, stripe_keys):
        site.stripe_customer_id = "cus_123"
        site.save()
        post_event(api_client, {
            "type": "customer.subscription.updated", "data": {"object": stripe_subscription("past_due")},
        })
        site.refresh_from_db()
        assert site.subscription_status == "PAST_DUE"

    def test_subscription_deleted(self, api_client, site, stripe_keys):
        site.stripe_customer_id = "cus_123"
        site.save()
        post_event(api_client, {
            "type": "customer.subscription.deleted", "data": {"object": stripe_subscription("active")},
        })
        site.refresh_from_db()
        assert site.subscription_status == "CANCELLED"

    def test_payment_failed(self, api_client, site, stripe_keys):
        site.stripe_customer_id = "cus_123"
        site.subscription_status = "ACTIVE"
        site.save()
        post_event(api_client, {"type": "invoice.payment_failed", "data": {"object": {"customer": "cus_123"}}})
        site.refresh_from_db()
        assert site.subscription_status == "PAST_DUE"

    def test_unknown_customer_is_acknowledged(self, api_client, db, stripe_keys):
        response, _ = post_event(api_client, {
            "type": "customer.subscription.updated", "data": {"object": stripe_subscription()},
        })
        assert response.data["data"] == {"received": True}

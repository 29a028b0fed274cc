"""
Tests for the websocket push endpoint: token auth, site rooms and delivery of
server-side events.
"""

import pytest
from asgiref.sync import sync_to_async
from channels.testing import WebsocketCommunicator
from rest_framework_simplejwt.tokens import AccessToken

from guard.consumers import SiteEventConsumer
from guard.realtime import emit

pytestmark = pytest.mark.django_db(transaction=True)


@pytest.fixture
def guard_token(guard_user):
    return str(AccessToken.for_user(guard_user))


def communicator_for(query):
    return WebsocketCommunicator(SiteEventConsumer.as_asgi(), f"/ws/events/?{query}")


class TestHandshake:
    async def test_missing_token_is_closed_with_4401(self):
        communicator = communicator_for("siteId=")
        connected, _ = await communicator.connect()
        assert connected is True
        closed = await communicator.receive_output()
        assert closed["type"] == "websocket.close"
        assert closed["code"] == 4401

    async def test_garbage_token_is_closed_with_4401(self):
        communicator = communicator_for("token=not-a-jwt")
        connected, _ = await communicator.connect()
        assert connected is True
        closed = await communicator.receive_output()
        assert closed["type"] == "websocket.close"
        assert closed["code"] == 4401

    async def test_join_site_from_query(self, guard_token, site):
        communicator = communicator_for(f"token={guard_token}&siteId={site.id}")
        connected, _ = await communicator.connect()
        assert connected is True
        reply = await communicator.receive_json_from()
        assert reply == {"event": "joined_site", "data": {"siteId": str(site.id)}}
        await communicator.disconnect()


class TestRooms:
    async def test_foreign_site_denied(self, guard_token, other_tenant):
        foreign_site = await sync_to_async(lambda: other_tenant.owned_sites().get())()
        communicator = communicator_for(f"token={guard_token}")
        await communicator.connect()
        await communicator.send_json_to({"action": "join_site", "siteId": str(foreign_site.id)})
        reply = await communicator.receive_json_from()
        assert reply == {"event": "error", "data": {"message": "Access denied to this site"}}
        await communicator.disconnect()

    async def test_leave_site(self, guard_token, site):
        communicator = communicator_for(f"token={guard_token}&siteId={site.id}")
        await communicator.connect()
        await communicator.receive_json_from()
        await communicator.send_json_to({"action": "leave_site", "siteId": str(site.id)})
        reply = await communicator.receive_json_from()
        assert reply["event"] == "left_site"

        await sync_to_async(emit)("visitor_checked_in", {"id": "v1"}, site_id=site.id, broadcast=False)
        assert await communicator.receive_nothing() is True
        await communicator.disconnect()

    async def test_unknown_action(self, guard_token):
        communicator = communicator_for(f"token={guard_token}")
        await communicator.connect()
        await communicator.send_json_to({"action": "dance"})
        reply = await communicator.receive_json_from()
        assert reply == {"event": "error", "data": {"message": "Unknown action."}}
        await communicator.disconnect()


class TestDelivery:
    async def test_site_event_reaches_room(self, guard_token, site):
        communicator = communicator_for(f"token={guard_token}&siteId={site.id}")
        await communicator.connect()
        await communicator.receive_json_from()

        await sync_to_async(emit)("visitor_checked_in", {"full_name": "Vera Visitor"}, site_id=site.id,
                                  broadcast=False)
        pushed = await communicator.receive_json_from()
        assert pushed == {"event": "visitor_checked_in", "data": {"full_name": "Vera Visitor"}}
        await communicator.disconnect()

    async def test_broadcast_reaches_everyone(self, guard_token):
        communicator = communicator_for(f"token={guard_token}")
        await communicator.connect()

        await sync_to_async(emit)("emergency_alert", {"type": "FIRE"})
        pushed = await communicator.receive_json_from()
        assert pushed["event"] == "emergency_alert"
        assert pushed["data"] == {"type": "FIRE"}
        await communicator.disconnect()

"""
Websocket endpoint for real-time push.

    ws/events/?token=<access JWT>&siteId=<uuid>

Clients send {"action": "join_site" | "leave_site", "siteId": "..."} to move
between site rooms; the server pushes {"event": "...", "data": {...}}.
"""

import logging
import uuid
from urllib.parse import parse_qs

from asgiref.sync import async_to_sync
from channels.generic.websocket import JsonWebsocketConsumer
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken

from .models import User
from .realtime import BROADCAST_GROUP, site_group

logger = logging.getLogger(__name__)

UNAUTHORIZED_CLOSE_CODE = 4401


class SiteEventConsumer(JsonWebsocketConsumer):

    def connect(self):
        self.site_groups = set()
        params = parse_qs(self.scope.get("query_string", b"").decode())
        self.user = self._authenticate((params.get("token") or [""])[0])
        self.accept()
        if self.user is None:
            self.close(code=UNAUTHORIZED_CLOSE_CODE)
            return
        async_to_sync(self.channel_layer.group_add)(BROADCAST_GROUP, self.channel_name)
        site_id = (params.get("siteId") or [""])[0]
        if site_id:
            self.join_site(site_id)

    def disconnect(self, code):
        if getattr(self, "user", None) is None:
            return
        async_to_sync(self.channel_layer.group_discard)(BROADCAST_GROUP, self.channel_name)
        for group in list(self.site_groups):
            async_to_sync(self.channel_layer.group_discard)(group, self.channel_name)
        self.site_groups.clear()

    def receive_json(self, content, **kwargs):
        action = content.get("action")
        site_id = content.get("siteId")
        if action == "join_site" and site_id:
            self.join_site(site_id)
        elif action == "leave_site" and site_id:
            self.leave_site(site_id)
        else:
            self.send_json({"event": "error", "data": {"message": "Unknown action."}})

    # -- rooms --------------------------------------------------------------

    def join_site(self, site_id):
        site_id = self._clean_site_id(site_id)
        if site_id is None or not self.user.can_access_site(site_id):
            self.send_json({"event": "error", "data": {"message": "Access denied to this site"}})
            return
        group = site_group(site_id)
        async_to_sync(self.channel_layer.group_add)(group, self.channel_name)
        self.site_groups.add(group)
        logger.debug("%s joined %s", self.user.email, group)
        self.send_json({"event": "joined_site", "data": {"siteId": site_id}})

    def leave_site(self, site_id):
        site_id = self._clean_site_id(site_id)
        if site_id is None:
            return
        group = site_group(site_id)
        async_to_sync(self.channel_layer.group_discard)(group, self.channel_name)
        self.site_groups.discard(group)
        self.send_json({"event": "left_site", "data": {"siteId": site_id}})

    # -- group message handler ---------------------------------------------

    def push_event(self, message):
        self.send_json({"event": message["event"], "data": message["data"]})

    # -- helpers -------------------------------------------------------------

    @staticmethod
    def _clean_site_id(site_id):
        try:
            return str(uuid.UUID(str(site_id)))
        except ValueError:
            return None

    @staticmethod
    def _authenticate(raw_token):
        if not raw_token:
            return None
        try:
            token = AccessToken(raw_token)
        except TokenError:
            return None
        return User.objects.filter(pk=token.get(api_settings.USER_ID_CLAIM), is_active=True).first()

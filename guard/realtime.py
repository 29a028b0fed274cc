"""
Server-side fan-out of push events over the Channels layer.

Every event goes to the `broadcast` group that all connected clients join.
Site-scoped events also go to `site_<id>`.
"""

import json
import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.core.serializers.json import DjangoJSONEncoder

logger = logging.getLogger(__name__)

BROADCAST_GROUP = "broadcast"


def site_group(site_id):
    return f"site_{site_id}"


def _jsonable(payload):
    return json.loads(json.dumps(payload, cls=DjangoJSONEncoder))


def emit(event, payload, site_id=None, broadcast=True):
    """Push `{"event", "data"}` to the broadcast group and/or a site room."""
    layer = get_channel_layer()
    if layer is None:
        logger.debug("No channel layer configured; dropping %s", event)
        return
    message = {"type": "push.event", "event": event, "data": _jsonable(payload)}
    groups = []
    if broadcast:
        groups.append(BROADCAST_GROUP)
    if site_id:
        groups.append(site_group(site_id))
    for group in groups:
        try:
            async_to_sync(layer.group_send)(group, message)
        except Exception:
            logger.exception("Push of %s to %s failed", event, group)

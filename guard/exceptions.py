"""
Error envelope for everything DRF and Django raise outside our own `err()`
returns: {"success": false, "error": "...", "details": ...}.
"""

import logging

from django.http import JsonResponse
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Something went wrong!"


def _message(detail):
    if isinstance(detail, dict):
        first = next(iter(detail.values()), "")
        return _message(first) if first else "Invalid request."
    if isinstance(detail, (list, tuple)):
        return _message(detail[0]) if detail else "Invalid request."
    return str(detail)


def envelope_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is None:
        logger.error("Unhandled error in %s", context.get("view"), exc_info=exc)
        return Response(
            {"success": False, "error": GENERIC_ERROR, "details": None},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    detail = response.data
    if isinstance(detail, dict) and set(detail) <= {"detail", "code", "messages"}:
        error, details = _message(detail.get("detail", "")), None
    else:
        error, details = _message(detail), detail
    response.data = {"success": False, "error": error, "details": details}
    return response


def json_not_found(request, exception=None):
    return JsonResponse(
        {"success": False, "error": f"Route {request.path} not found.", "details": None},
        status=404,
    )


def json_server_error(request):
    return JsonResponse({"success": False, "error": GENERIC_ERROR, "details": None}, status=500)

"""
=============================================================================
ACSOGUARD — views.py  (Function-Based Views)
=============================================================================
Every endpoint is a plain @api_view FBV using DRF.
Pattern per resource:
    list_create   → GET (list + filters) | POST (create)
    detail        → GET (single) | PUT/PATCH (update) | DELETE
    action views  → single-purpose business operations (checkin, resolve, ...)

Access helpers used throughout:
    role_error()               → 403 unless the user holds one of the roles
    site_scope()               → which site(s) a request covers (tenant-checked)
    check_subscription_limit() → seat gate for new staff accounts

Return format (all endpoints):
    Success → {"success": True, "data": {...}, "message": "..."}
    Error   → {"success": False, "error": "...", "details": {...}}

Side effects (activities, alerts, email, SMS, websocket push) are
best-effort: they are logged on failure and never fail the request.
=============================================================================
"""

import csv
import logging
import secrets
import uuid
from datetime import datetime, time, timedelta
from datetime import timezone as dt_timezone

import stripe
from django.conf import settings
from django.contrib.auth.models import update_last_login
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db.models import Count, Q
from django.db.models.functions import ExtractHour
from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken

from . import notifications
from .models import (
    ALL_ROLES, ROLE_ADMIN, ROLE_RECEPTIONIST, ROLE_SECURITY_GUARD,
    ROLE_SITE_MANAGER, ROLE_SUPER_ADMIN, STAFF_ROLES,
    AccessPoint, Activity, ActivityAlert, AuditLog, BannedVisitor, Company,
    Incident, Site, Subscription, TermsAndWaivers, User, Visitor,
)
from .realtime import emit

logger = logging.getLogger(__name__)

FRONT_DESK_ROLES = (ROLE_ADMIN, ROLE_SITE_MANAGER, ROLE_SECURITY_GUARD, ROLE_RECEPTIONIST)
MANAGER_ROLES = (ROLE_ADMIN, ROLE_SITE_MANAGER)
EMERGENCY_TYPES = ("EVACUATION", "LOCKDOWN", "MEDICAL", "SECURITY", "FIRE")
NOTIFY_TYPES = ("SMS", "EMAIL", "BOTH")
MIN_PASSWORD_LENGTH = 6


# =============================================================================
# HELPERS
# =============================================================================

def ok(data=None, message="Success", status_code=status.HTTP_200_OK):
    return Response({"success": True, "message": message, "data": data}, status=status_code)


def err(error, details=None, status_code=status.HTTP_400_BAD_REQUEST):
    return Response({"success": False, "error": error, "details": details}, status=status_code)


def paginate(queryset, request, to_dict, per_page=10):
    """Offset pagination via ?page= and ?limit= (or ?per_page=)."""
    try:
        page = max(1, int(request.GET.get("page", 1)))
        per_page = max(1, min(100, int(request.GET.get("limit", request.GET.get("per_page", per_page)))))
    except ValueError:
        page = 1
    start = (page - 1) * per_page
    end = start + per_page
    total = queryset.count()
    items = queryset[start:end]
    return {
        "results": [to_dict(obj) for obj in items],
        "pagination": {
            "total": total,
            "page": page,
            "per_page": per_page,
            "pages": (total + per_page - 1) // per_page,
            "has_next": end < total,
            "has_prev": page > 1,
        },
    }


def role_error(user, *roles):
    """403 envelope unless the user holds one of `roles` (case-insensitive)."""
    if user.has_role(*roles):
        return None
    required = " or ".join(r.lower() for r in roles)
    return err(
        f"Access denied. Required role: {required}. Your role: {(user.role or 'none').lower()}",
        status_code=status.HTTP_403_FORBIDDEN,
    )


def site_denied():
    return err("Access denied to this site", status_code=status.HTTP_403_FORBIDDEN)


def parse_uuid(value):
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def site_scope(request, single=False, site_id=None):
    """
    Resolve the site(s) a request covers. Returns (site_ids, error_response).

    An explicit site (argument, ?siteId= or ?site_id=) must be accessible to
    the caller. Otherwise admins get every site they own (the oldest one in
    single mode), super admins get all sites for lists, and staff get their
    assigned site.
    """
    user = request.user
    raw = site_id or request.GET.get("siteId") or request.GET.get("site_id")
    if raw:
        parsed = parse_uuid(raw)
        if parsed is None:
            return None, err("Invalid site id.")
        if not Site.objects.filter(pk=parsed).exists():
            return None, err("Site not found.", status_code=status.HTTP_404_NOT_FOUND)
        if not user.can_access_site(parsed):
            return None, site_denied()
        return [parsed], None

    if user.is_tenant_admin:
        ids = list(user.owned_sites().order_by("created_at").values_list("id", flat=True))
    elif user.is_super_admin and not single:
        ids = list(Site.objects.values_list("id", flat=True))
    elif user.assigned_site_id:
        ids = [user.assigned_site_id]
    else:
        ids = []
    if not ids:
        return None, err("Site context is required")
    return (ids[:1] if single else ids), None


def check_subscription_limit(user):
    """Seat gate: the tenant needs a current subscription with a free seat."""
    if user.is_super_admin:
        return None
    admin = user.tenant_admin()
    subscription = Subscription.objects.filter(admin=admin).first() if admin else None
    if subscription is None or not subscription.is_current():
        return err("No active subscription found", status_code=status.HTTP_403_FORBIDDEN)
    if subscription.current_users() >= subscription.member_limit:
        return err(
            f"Member limit of {subscription.member_limit} reached. Please upgrade your plan.",
            status_code=status.HTTP_403_FORBIDDEN,
        )
    return None


def log_action(user, action, model_name, object_id, description, request=None, site=None):
    """Write to immutable AuditLog."""
    AuditLog.objects.create(
        user=user,
        action=action,
        model_name=model_name,
        object_id=str(object_id),
        description=description,
        ip_address=client_ip(request) if request else None,
        user_agent=request.META.get("HTTP_USER_AGENT", "")[:500] if request else "",
        site=site or getattr(user, "assigned_site", None),
    )


def client_ip(request):
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR")


def safely(action, *args, **kwargs):
    """Run a best-effort side effect; failures are logged and swallowed."""
    try:
        return action(*args, **kwargs)
    except Exception:
        logger.exception("Side effect %s failed", getattr(action, "__name__", action))
        return None


def gen_token(length=32):
    return secrets.token_urlsafe(length)


def is_blank(value):
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


FIELD_REQUIRED = "This field is required."
FIELD_NOT_TEXT = "Must be a string."


def field_errors(data, fields):
    """Required text fields: blank ones are missing, non-strings are rejected."""
    errors = {}
    for f in fields:
        value = data.get(f)
        if is_blank(value):
            errors[f] = FIELD_REQUIRED
        elif not isinstance(value, str):
            errors[f] = FIELD_NOT_TEXT
    return errors


def require_fields(data, fields):
    errors = field_errors(data, fields)
    if not errors:
        return None
    first = next(iter(errors))
    if errors[first] == FIELD_REQUIRED:
        message = f"Field '{first}' is required."
    else:
        message = f"Field '{first}' must be a string."
    return err(message, details=errors)


def valid_email(value):
    try:
        validate_email(value)
    except ValidationError:
        return False
    return True


def choice(value):
    return str(value or "").strip().upper()


def as_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def as_int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_moment(value):
    """ISO datetime or plain date → aware datetime (None when unparseable)."""
    if not value:
        return None
    if isinstance(value, datetime):
        moment = value
    else:
        try:
            moment = parse_datetime(str(value))
            if moment is None:
                day = parse_date(str(value))
                moment = datetime.combine(day, time.min) if day else None
        except ValueError:
            return None
    if moment is None:
        return None
    if timezone.is_naive(moment):
        moment = timezone.make_aware(moment)
    return moment


def start_of_today():
    return timezone.make_aware(datetime.combine(timezone.localdate(), time.min))


def range_start(time_range):
    """today → local midnight, week → last 7 days, month → last 30 days."""
    now = timezone.now()
    if time_range == "week":
        return now - timedelta(days=7)
    if time_range == "month":
        return now - timedelta(days=30)
    return start_of_today()


def report_range(request):
    """?start_date / ?end_date (days, inclusive) → aware (start, end); defaults to today."""
    today = timezone.localdate()

    def day(*names):
        for name in names:
            raw = request.GET.get(name)
            if raw:
                try:
                    parsed = parse_date(raw)
                except ValueError:
                    parsed = None
                if parsed:
                    return parsed
        return today

    start = day("start_date", "startDate")
    end = day("end_date", "endDate")
    return (
        timezone.make_aware(datetime.combine(start, time.min)),
        timezone.make_aware(datetime.combine(end, time.max)),
    )


def issue_tokens(user):
    refresh = RefreshToken.for_user(user)
    return {"access": str(refresh.access_token), "refresh": str(refresh)}


# =============================================================================
# Inline serialiser helpers (lightweight dicts – no separate serializers.py needed)
# =============================================================================

def _user_dict(u):
    if not u:
        return None
    return {
        "id": str(u.id),
        "full_name": u.full_name,
        "email": u.email,
        "phone": u.phone,
        "role": u.role,
        "is_active": u.is_active,
        "assigned_site": _site_ref(u.assigned_site),
    }


def _user_detail_dict(u):
    return {
        **_user_dict(u),
        "address": u.address,
        "admin_id": str(u.admin_id) if u.admin_id else None,
        "managed_sites": [_site_ref(s) for s in u.managed_sites.all()],
        "last_login": u.last_login,
        "created_at": u.created_at,
    }


def _site_ref(s):
    if not s:
        return None
    return {"id": str(s.id), "name": s.name}


def _visitor_ref(v):
    if not v:
        return None
    return {"id": str(v.id), "full_name": v.full_name, "badge_number": v.badge_number}


def _site_dict(s, detail=False):
    d = {
        "id": str(s.id),
        "name": s.name,
        "address": s.address,
        "city": s.city,
        "state": s.state,
        "zip_code": s.zip_code,
        "country": s.country,
        "is_active": s.is_active,
        "admin": _user_dict(s.admin) if detail else (str(s.admin_id) if s.admin_id else None),
        "subscription_status": s.subscription_status,
        "subscription_plan": s.subscription_plan,
        "created_at": s.created_at,
    }
    if detail:
        d.update({
            "settings": s.settings,
            "contact_phone": s.contact_phone,
            "contact_email": s.contact_email,
            "emergency_phone": s.emergency_phone,
            "current_period_start": s.current_period_start,
            "current_period_end": s.current_period_end,
            "access_points": [_access_point_dict(ap) for ap in s.access_points.all()],
            "staff": [_user_dict(u) for u in s.staff.all()],
        })
    return d


def _access_point_dict(ap):
    if not ap:
        return None
    return {
        "id": str(ap.id),
        "site": str(ap.site_id),
        "name": ap.name,
        "description": ap.description,
        "type": ap.type,
        "location": ap.location,
        "is_active": ap.is_active,
        "access_level": ap.access_level,
        "required_ppe": ap.required_ppe,
        "operating_hours": ap.operating_hours,
        "capacity": ap.capacity,
        "current_occupancy": ap.current_occupancy,
    }


def _visitor_dict(v, detail=False):
    d = {
        "id": str(v.id),
        "full_name": v.full_name,
        "email": v.email,
        "phone": v.phone,
        "company": v.company,
        "purpose": v.purpose,
        "contact_person": v.contact_person,
        "site": _site_ref(v.site),
        "access_point": _site_ref(v.access_point),
        "status": v.status,
        "badge_number": v.badge_number,
        "check_in_time": v.check_in_time,
        "check_out_time": v.check_out_time,
        "expected_duration": v.expected_duration,
        "has_overstayed": v.has_overstayed(),
        "is_pre_registered": v.is_pre_registered,
    }
    if detail:
        d.update({
            "qr_code": v.qr_code,
            "ppe_verified": v.ppe_verified,
            "safety_induction_completed": v.safety_induction_completed,
            "safety_induction_date": v.safety_induction_date,
            "emergency_contact": {
                "name": v.emergency_contact_name,
                "phone": v.emergency_contact_phone,
                "relationship": v.emergency_contact_relationship,
            },
            "special_access": v.special_access,
            "special_access_expiry": v.special_access_expiry,
            "host": {
                "name": v.host_name,
                "email": v.host_email,
                "phone": v.host_phone,
                "department": v.host_department,
            },
            "documents": v.documents,
            "notes": v.notes,
            "security_notes": v.security_notes,
            "duration_minutes": v.duration_minutes() if v.check_in_time else None,
            "checked_in_by": _user_dict(v.checked_in_by),
            "checked_out_by": _user_dict(v.checked_out_by),
            "pre_registration_date": v.pre_registration_date,
            "created_at": v.created_at,
        })
    return d


def _banned_dict(b):
    return {
        "id": str(b.id),
        "full_name": b.full_name,
        "email": b.email,
        "phone": b.phone,
        "company": b.company,
        "reason": b.reason,
        "description": b.description,
        "site": _site_ref(b.site),
        "banned_by": _user_dict(b.banned_by),
        "banned_date": b.banned_date,
        "expiry_date": b.expiry_date,
        "is_active": b.is_active,
        "is_expired": b.is_expired(),
        "reviewed_by": _user_dict(b.reviewed_by),
        "review_date": b.review_date,
        "review_notes": b.review_notes,
        "incident_report": b.incident_report,
        "evidence": b.evidence,
        "appeal_status": b.appeal_status,
    }


def _incident_dict(i, detail=False):
    d = {
        "id": str(i.id),
        "title": i.title,
        "description": i.description,
        "type": i.incident_type,
        "severity": i.severity,
        "status": i.status,
        "site": _site_ref(i.site),
        "incident_date": i.incident_date,
        "reported_date": i.reported_date,
        "reported_by": _user_dict(i.reported_by),
        "assigned_to": _user_dict(i.assigned_to),
        "days_since_incident": i.days_since_incident,
        "is_overdue": i.is_overdue(),
    }
    if detail:
        d.update({
            "location": {
                "access_point": _site_ref(i.access_point),
                "building": i.building,
                "floor": i.floor,
                "specific_location": i.specific_location,
                "latitude": i.latitude,
                "longitude": i.longitude,
            },
            "people_involved": i.people_involved,
            "witnesses": i.witnesses,
            "investigation": {
                "assigned_to": _user_dict(i.assigned_to),
                "start_date": i.investigation_start,
                "end_date": i.investigation_end,
                "findings": i.findings,
                "recommendations": i.recommendations,
            },
            "corrective_actions": i.corrective_actions,
            "follow_up_actions": i.follow_up_actions,
            "evidence": i.evidence,
            "reported_to_authorities": i.reported_to_authorities,
            "authority_contact": i.authority_contact,
            "report_number": i.report_number,
            "report_date": i.report_date,
            "resolution": {
                "resolved_by": _user_dict(i.resolved_by),
                "resolved_date": i.resolved_date,
                "resolution_notes": i.resolution_notes,
                "lessons_learned": i.lessons_learned,
            },
            "tags": i.tags,
            "related_incidents": [str(r.id) for r in i.related_incidents.all()],
        })
    return d


def _activity_dict(a):
    return {
        "id": str(a.id),
        "type": a.type,
        "title": a.title,
        "description": a.description,
        "site": str(a.site_id),
        "visitor": _visitor_ref(a.visitor) if a.visitor_id else None,
        "access_point": _site_ref(a.access_point) if a.access_point_id else None,
        "incident": str(a.incident_id) if a.incident_id else None,
        "performed_by": _user_dict(a.performed_by) if a.performed_by_id else None,
        "metadata": a.metadata,
        "priority": a.priority,
        "status": a.status,
        "timestamp": a.timestamp,
    }


def _alert_dict(a, user=None):
    d = {
        "id": str(a.id),
        "type": a.type,
        "title": a.title,
        "message": a.message,
        "site": str(a.site_id),
        "visitor": str(a.visitor_id) if a.visitor_id else None,
        "access_point": str(a.access_point_id) if a.access_point_id else None,
        "severity": a.severity,
        "status": a.status,
        "target_roles": a.target_roles,
        "metadata": a.metadata,
        "created_at": a.created_at,
        "expires_at": a.expires_at,
    }
    if user is not None:
        d["is_read"] = a.is_read_by(user)
    return d


def _subscription_dict(s):
    if not s:
        return None
    return {
        "id": str(s.id),
        "admin": str(s.admin_id),
        "plan": s.plan,
        "status": s.status,
        "start_date": s.start_date,
        "end_date": s.end_date,
        "member_limit": s.member_limit,
        "is_current": s.is_current(),
        "current_users": s.current_users(),
    }


def _company_dict(c):
    return {
        "id": str(c.id),
        "name": c.name,
        "contact_info": {"email": c.contact_email, "phone": c.contact_phone},
        "address": {
            "street": c.street, "city": c.city, "state": c.state,
            "zip_code": c.zip_code, "country": c.country,
        },
        "notes": c.notes,
        "is_active": c.is_active,
        "visitor_count": c.visitor_count,
        "last_visit": c.last_visit,
        "created_by": _user_dict(c.created_by),
        "created_at": c.created_at,
    }


def _terms_dict(t, detail=False):
    d = {
        "id": str(t.id),
        "site": str(t.site_id),
        "title": t.title,
        "type": t.terms_type,
        "version": t.version,
        "is_active": t.is_active,
        "is_required": t.is_required,
        "effective_date": t.effective_date,
        "expiry_date": t.expiry_date,
    }
    if detail:
        d.update({
            "content": t.content,
            "custom_fields": t.custom_fields,
            "created_by": _user_dict(t.created_by),
            "last_modified_by": _user_dict(t.last_modified_by),
            "acceptance_count": t.acceptances.count(),
        })
    return d


def _site_info(user):
    """The site a user works in: first owned site for admins, else assigned."""
    if user.is_tenant_admin:
        site = user.owned_sites().order_by("created_at").first()
    else:
        site = user.assigned_site
    return _site_ref(site)


def _tenant_subscription(user):
    admin = user.tenant_admin()
    if not admin:
        return None
    return Subscription.objects.filter(admin=admin).first()


# =============================================================================
# 1. AUTHENTICATION
# =============================================================================

def _create_tenant(full_name, email, password, site_name=None, phone=""):
    """New ADMIN account with a default site and its standard access points."""
    admin = User.objects.create_user(
        email=email, password=password, full_name=full_name, role=ROLE_ADMIN, phone=phone,
    )
    site = Site.objects.create(name=site_name or f"{full_name}'s Site", admin=admin, contact_email=email)
    site.create_default_access_points()
    admin.managed_sites.add(site)
    return admin, site


@api_view(["POST"])
@permission_classes([AllowAny])
@authentication_classes([])
def register_view(request):
    """
    POST /api/auth/register/
    Body: { "full_name", "email", "password", ["site_name", "phone"] }
    Self-service tenant sign-up; no subscription is created.
    """
    missing = require_fields(request.data, ["full_name", "email", "password"])
    if missing:
        return missing
    email = request.data["email"].strip().lower()
    if not valid_email(email):
        return err("Please provide a valid email.", details={"email": "Enter a valid email address."})
    if len(request.data["password"]) < MIN_PASSWORD_LENGTH:
        return err(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if User.objects.filter(email=email).exists():
        return err("User already exists")

    admin, site = _create_tenant(
        request.data["full_name"].strip(), email, request.data["password"],
        site_name=request.data.get("site_name"), phone=request.data.get("phone", ""),
    )
    log_action(admin, "CREATE", "User", admin.id, "Tenant admin registered", request, site=site)
    logger.info("Registered tenant admin %s with site %s", admin.email, site.name)
    return ok({
        **issue_tokens(admin),
        "user": _user_dict(admin),
        "site_info": _site_ref(site),
    }, message="Registration successful.", status_code=status.HTTP_201_CREATED)


PLAN_TO_SITE_PLAN = {"STARTER": "BASIC", "PROFESSIONAL": "PREMIUM", "ENTERPRISE": "ENTERPRISE"}


def _sync_site_subscription(admin, subscription):
    """Mirror the admin's seat subscription onto their sites."""
    site_status = "ACTIVE" if subscription.is_current() else "INACTIVE"
    admin.owned_sites().update(
        subscription_status=site_status,
        subscription_plan=PLAN_TO_SITE_PLAN.get(subscription.plan, "BASIC"),
    )


@api_view(["POST"])
@permission_classes([AllowAny])
@authentication_classes([])
def login_view(request):
    """
    POST /api/auth/login/
    Body: { "email": "...", "password": "..." }
    Returns: access + refresh JWT tokens, user profile, site and subscription.
    """
    identifier = str(request.data.get("email") or request.data.get("username") or "").strip().lower()
    password = request.data.get("password", "")
    if not identifier or not password:
        return err("Email and password are required.")

    user = User.objects.filter(Q(email=identifier) | Q(username=identifier)).first()
    if user is None or not user.check_password(password):
        return err("Invalid credentials")
    if not user.is_active:
        return err("Account is deactivated")

    subscription = _tenant_subscription(user)
    if subscription and user.is_tenant_admin:
        _sync_site_subscription(user, subscription)
    update_last_login(None, user)
    log_action(user, "LOGIN", "User", user.id, f"Login from {client_ip(request)}", request)

    return ok({
        **issue_tokens(user),
        "user": _user_dict(user),
        "site_info": _site_info(user),
        "subscription": _subscription_dict(subscription),
    }, message="Login successful.")


@api_view(["POST"])
@permission_classes([AllowAny])
@authentication_classes([])
def token_refresh_view(request):
    """
    POST /api/auth/token/refresh/
    Body: { "refresh": "<token>" }
    """
    refresh_token = request.data.get("refresh")
    if not refresh_token:
        return err("Refresh token required.")
    try:
        token = RefreshToken(refresh_token)
        return ok({"access": str(token.access_token)})
    except TokenError as e:
        return err(str(e), status_code=status.HTTP_401_UNAUTHORIZED)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def logout_view(request):
    """
    POST /api/auth/logout/
    Body: { ["refresh": "<token>"] } — blacklisted when supplied.
    """
    refresh_token = request.data.get("refresh")
    if refresh_token:
        try:
            RefreshToken(refresh_token).blacklist()
        except TokenError as e:
            return err(str(e))
    log_action(request.user, "LOGOUT", "User", request.user.id, "User logged out", request)
    return ok(message="Logged out successfully.")


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def me_view(request):
    """GET /api/auth/me/ — current user, their site and tenant subscription."""
    user = request.user
    return ok({
        "user": _user_detail_dict(user),
        "site_info": _site_info(user),
        "subscription": _subscription_dict(_tenant_subscription(user)),
    })


@api_view(["PUT", "PATCH"])
@permission_classes([IsAuthenticated])
def profile_view(request):
    """PUT /api/auth/profile/ — full_name, email, phone, address."""
    user = request.user
    if "email" in request.data:
        email = str(request.data["email"]).strip().lower()
        if not valid_email(email):
            return err("Please provide a valid email.", details={"email": "Enter a valid email address."})
        if User.objects.filter(email=email).exclude(pk=user.pk).exists():
            return err("Email is already in use.")
        user.email = email
        user.username = email
    for field in ["full_name", "phone", "address"]:
        if field in request.data:
            setattr(user, field, request.data[field])
    user.save()
    return ok(_user_dict(user), message="Profile updated.")


@api_view(["PUT", "POST"])
@permission_classes([IsAuthenticated])
def change_password_view(request):
    """
    PUT /api/auth/change-password/
    Body: { "current_password", "new_password" }
    """
    user = request.user
    current = request.data.get("current_password", "")
    new = request.data.get("new_password", "")
    if not user.check_password(current):
        return err("Current password is incorrect")
    if len(new or "") < MIN_PASSWORD_LENGTH:
        return err(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    user.set_password(new)
    user.save()
    log_action(user, "UPDATE", "User", user.id, "Password changed", request)
    return ok(message="Password changed successfully.")


# =============================================================================
# 2. USER MANAGEMENT (tenant staff)
# =============================================================================

def _manageable_users(user):
    """Staff accounts `user` may see: own tenant for admins, own site for staff."""
    qs = User.objects.exclude(role__in=[ROLE_ADMIN, ROLE_SUPER_ADMIN]).select_related("assigned_site")
    if user.is_super_admin:
        return qs
    if user.is_tenant_admin:
        site_ids = user.owned_sites().values_list("id", flat=True)
        return qs.filter(Q(assigned_site_id__in=site_ids) | Q(admin=user)).distinct()
    if user.assigned_site_id:
        return qs.filter(assigned_site_id=user.assigned_site_id)
    return qs.none()


def _owned_site(user, raw_site_id):
    site_id = parse_uuid(raw_site_id)
    if site_id is None:
        return None
    if user.is_super_admin:
        return Site.objects.filter(pk=site_id).first()
    return user.owned_sites().filter(pk=site_id).first()


@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
def user_list_create(request):
    """
    GET  /api/users/?siteId=&role=&search=&is_active=  → staff in scope
    POST /api/users/                                    → create staff (admin, seat-gated)
    """
    user = request.user
    if request.method == "GET":
        qs = _manageable_users(user)
        raw_site = request.GET.get("siteId") or request.GET.get("site_id")
        if raw_site:
            site_id = parse_uuid(raw_site)
            if site_id is None or not user.can_access_site(site_id):
                return site_denied()
            qs = qs.filter(assigned_site_id=site_id)
        role = request.GET.get("role")
        search = request.GET.get("search")
        is_active = request.GET.get("is_active")
        if role:
            qs = qs.filter(role=choice(role))
        if search:
            qs = qs.filter(Q(full_name__icontains=search) | Q(email__icontains=search))
        if is_active is not None:
            qs = qs.filter(is_active=as_bool(is_active))
        return ok(paginate(qs.order_by("full_name"), request, _user_dict, per_page=20))

    denied = role_error(user, ROLE_ADMIN) or check_subscription_limit(user)
    if denied:
        return denied
    missing = require_fields(request.data, ["full_name", "email", "password", "role", "assigned_site"])
    if missing:
        return missing
    role = choice(request.data["role"])
    if role not in STAFF_ROLES:
        return err("Invalid role.", details={"role": f"Must be one of: {', '.join(r.lower() for r in STAFF_ROLES)}"})
    email = request.data["email"].strip().lower()
    if not valid_email(email):
        return err("Please provide a valid email.", details={"email": "Enter a valid email address."})
    if len(request.data["password"]) < MIN_PASSWORD_LENGTH:
        return err(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    site = _owned_site(user, request.data["assigned_site"])
    if site is None:
        return err("You can only create users for your own sites", status_code=status.HTTP_403_FORBIDDEN)
    if User.objects.filter(email=email).exists():
        return err("User already exists")

    staff = User.objects.create_user(
        email=email,
        password=request.data["password"],
        full_name=request.data["full_name"].strip(),
        role=role,
        phone=request.data.get("phone", ""),
        address=request.data.get("address", ""),
        assigned_site=site,
        admin=user,
    )
    log_action(user, "CREATE", "User", staff.id, f"{role} account created for {email}", request, site=site)
    return ok(_user_detail_dict(staff), message="User created successfully.", status_code=status.HTTP_201_CREATED)


@api_view(["GET", "PUT", "PATCH", "DELETE"])
@permission_classes([IsAuthenticated])
def user_detail(request, user_id):
    """GET/PUT/PATCH/DELETE /api/users/<id>/ — admin targets are off-limits."""
    user = request.user
    target = get_object_or_404(User, id=user_id)
    if target.has_role(ROLE_ADMIN, ROLE_SUPER_ADMIN) and not user.is_super_admin:
        if request.method == "DELETE":
            return err("Cannot delete admin users")
        return err("Access denied to admin accounts", status_code=status.HTTP_403_FORBIDDEN)
    if not _manageable_users(user).filter(pk=target.pk).exists() and target.pk != user.pk:
        return err("Access denied to this user", status_code=status.HTTP_403_FORBIDDEN)

    if request.method == "GET":
        return ok(_user_detail_dict(target))

    denied = role_error(user, ROLE_SUPER_ADMIN, ROLE_ADMIN)
    if denied:
        return denied

    if request.method in ("PUT", "PATCH"):
        if "role" in request.data:
            role = choice(request.data["role"])
            if role not in STAFF_ROLES:
                return err("Invalid role.")
            target.role = role
        if "assigned_site" in request.data:
            site = _owned_site(user, request.data["assigned_site"])
            if site is None:
                return err("You can only assign users to your own sites", status_code=status.HTTP_403_FORBIDDEN)
            target.assigned_site = site
        if "email" in request.data:
            email = str(request.data["email"]).strip().lower()
            if not valid_email(email):
                return err("Please provide a valid email.")
            if User.objects.filter(email=email).exclude(pk=target.pk).exists():
                return err("User already exists")
            target.email = email
            target.username = email
        for f in ["full_name", "phone", "address"]:
            if f in request.data:
                setattr(target, f, request.data[f])
        if "is_active" in request.data:
            target.is_active = as_bool(request.data["is_active"])
        target.save()
        log_action(user, "UPDATE", "User", target.id, "User updated", request, site=target.assigned_site)
        return ok(_user_detail_dict(target), message="User updated.")

    log_action(user, "DELETE", "User", target.id, f"User {target.email} deleted", request, site=target.assigned_site)
    target.delete()
    return ok(message="User deleted successfully.")


@api_view(["PUT"])
@permission_classes([IsAuthenticated])
def user_activate(request, user_id):
    """PUT /api/users/<id>/activate/  Body: { ["is_active": bool] } — toggles when omitted."""
    denied = role_error(request.user, ROLE_SUPER_ADMIN, ROLE_ADMIN)
    if denied:
        return denied
    target = get_object_or_404(_manageable_users(request.user), id=user_id)
    if "is_active" in request.data:
        target.is_active = as_bool(request.data["is_active"])
    else:
        target.is_active = not target.is_active
    target.save(update_fields=["is_active", "updated_at"])
    action = "ACTIVATE" if target.is_active else "DEACTIVATE"
    log_action(request.user, action, "User", target.id, f"User {action.lower()}d", request, site=target.assigned_site)
    state = "activated" if target.is_active else "deactivated"
    return ok(_user_dict(target), message=f"User {state} successfully.")


@api_view(["PUT"])
@permission_classes([IsAuthenticated])
def user_reset_password(request, user_id):
    """PUT /api/users/<id>/reset-password/  Body: { "new_password" }"""
    denied = role_error(request.user, ROLE_SUPER_ADMIN, ROLE_ADMIN)
    if denied:
        return denied
    target = get_object_or_404(_manageable_users(request.user), id=user_id)
    new = request.data.get("new_password", "")
    if len(new or "") < MIN_PASSWORD_LENGTH:
        return err(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    target.set_password(new)
    target.save()
    log_action(request.user, "PASSWORD_RESET", "User", target.id, "Password reset by admin", request)
    return ok(message="Password reset successfully.")


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def user_stats(request):
    """GET /api/users/stats/dashboard/"""
    denied = role_error(request.user, ROLE_SUPER_ADMIN, *MANAGER_ROLES)
    if denied:
        return denied
    qs = _manageable_users(request.user)
    return ok({
        "total_users": qs.count(),
        "active_users": qs.filter(is_active=True).count(),
        "site_managers": qs.filter(role=ROLE_SITE_MANAGER).count(),
        "security_guards": qs.filter(role=ROLE_SECURITY_GUARD).count(),
        "receptionists": qs.filter(role=ROLE_RECEPTIONIST).count(),
    })


# =============================================================================
# 3. SITES
# =============================================================================

@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
def site_list_create(request):
    """
    GET  /api/sites/  → admin: owned sites | super admin: all | staff: assigned site
    POST /api/sites/  → create (admin); seeds the default access points
    """
    user = request.user
    if request.method == "GET":
        if user.is_super_admin:
            qs = Site.objects.all()
        elif user.is_tenant_admin:
            qs = user.owned_sites()
        else:
            qs = Site.objects.filter(pk=user.assigned_site_id)
        data = [{
            **_site_dict(s),
            "access_point_count": s.access_points.count(),
        } for s in qs.order_by("name")]
        return ok(data)

    denied = role_error(user, ROLE_ADMIN)
    if denied:
        return denied
    missing = require_fields(request.data, ["name", "address", "city", "state", "zip_code"])
    if missing:
        return missing
    site = Site.objects.create(
        name=request.data["name"],
        address=request.data["address"],
        city=request.data["city"],
        state=request.data["state"],
        zip_code=request.data["zip_code"],
        country=request.data.get("country") or "USA",
        contact_phone=request.data.get("contact_phone", ""),
        contact_email=request.data.get("contact_email", ""),
        emergency_phone=request.data.get("emergency_phone", ""),
        admin=user,
    )
    if isinstance(request.data.get("settings"), dict):
        site.settings = {**site.settings, **request.data["settings"]}
        site.save(update_fields=["settings"])
    site.create_default_access_points()
    user.managed_sites.add(site)
    log_action(user, "CREATE", "Site", site.id, f"Site '{site.name}' created", request, site=site)
    return ok(_site_dict(site, detail=True), message="Site created.", status_code=status.HTTP_201_CREATED)


@api_view(["GET", "PUT", "PATCH", "DELETE"])
@permission_classes([IsAuthenticated])
def site_detail(request, site_id):
    """GET/PUT/PATCH/DELETE /api/sites/<id>/"""
    site = get_object_or_404(Site, id=site_id)
    user = request.user
    if not user.can_access_site(site):
        return site_denied()

    if request.method == "GET":
        return ok(_site_dict(site, detail=True))

    if request.method in ("PUT", "PATCH"):
        denied = role_error(user, ROLE_SUPER_ADMIN, *MANAGER_ROLES)
        if denied:
            return denied
        fields = ["name", "address", "city", "state", "zip_code", "country",
                  "contact_phone", "contact_email", "emergency_phone"]
        for f in fields:
            if f in request.data:
                setattr(site, f, request.data[f])
        if "is_active" in request.data:
            site.is_active = as_bool(request.data["is_active"])
        if isinstance(request.data.get("settings"), dict):
            site.settings = {**(site.settings or {}), **request.data["settings"]}
        site.save()
        log_action(user, "UPDATE", "Site", site.id, "Site updated", request, site=site)
        return ok(_site_dict(site, detail=True), message="Site updated.")

    if not (user.is_super_admin or site.admin_id == user.pk):
        return err("Only the site owner can delete a site.", status_code=status.HTTP_403_FORBIDDEN)
    log_action(user, "DELETE", "Site", site.id, f"Site '{site.name}' deleted", request)
    site.delete()
    return ok(message="Site deleted.")


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def site_access_points(request, site_id):
    """GET /api/sites/<id>/access-points/"""
    site = get_object_or_404(Site, id=site_id)
    if not request.user.can_access_site(site):
        return site_denied()
    return ok([_access_point_dict(ap) for ap in site.access_points.order_by("name")])


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def site_stats(request, site_id):
    """GET /api/sites/<id>/stats/ — headline visitor numbers."""
    site = get_object_or_404(Site, id=site_id)
    if not request.user.can_access_site(site):
        return site_denied()
    visitors = Visitor.objects.filter(site=site)
    on_site = list(visitors.filter(status="CHECKED_IN"))
    return ok({
        "total_visitors": visitors.exclude(status="PENDING").count(),
        "currently_on_site": len(on_site),
        "todays_visitors": visitors.filter(check_in_time__gte=start_of_today()).count(),
        "overstayed_visitors": sum(1 for v in on_site if v.has_overstayed()),
    })


# =============================================================================
# 4. ACCESS POINTS
# =============================================================================

ACCESS_POINT_FIELDS = ["name", "description", "location", "required_ppe", "operating_hours", "capacity"]
ACCESS_POINT_TRACKED = ("name", "type", "access_level", "is_active")


def _apply_access_point_fields(ap, data):
    for f in ACCESS_POINT_FIELDS:
        if f in data:
            setattr(ap, f, data[f])
    if "type" in data:
        ap.type = choice(data["type"])
    if "access_level" in data:
        ap.access_level = choice(data["access_level"])
    if "is_active" in data:
        ap.is_active = as_bool(data["is_active"])


def _access_point_choices_error(ap):
    if ap.type not in dict(AccessPoint.TYPE_CHOICES):
        return err("Invalid access point type.", details={"type": f"Must be one of: {', '.join(dict(AccessPoint.TYPE_CHOICES))}"})
    if ap.access_level not in dict(AccessPoint.ACCESS_LEVELS):
        return err("Invalid access level.", details={"access_level": f"Must be one of: {', '.join(dict(AccessPoint.ACCESS_LEVELS))}"})
    return None


def _announce_access_point(ap, user, updated=False):
    Activity.create_access_point(ap, user, updated=updated)
    title = "Access Point Updated" if updated else "New Access Point Created"
    verb = "updated" if updated else "created"
    ActivityAlert.create_system_alert(
        title, f"Access point '{ap.name}' was {verb} by {user.full_name}", ap.site,
        severity="INFO", target_roles=MANAGER_ROLES, metadata={"access_point_id": str(ap.id)},
    )


@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
def access_point_list_create(request):
    """
    GET  /api/access-points/?siteId=  → active points of one site, by name
    POST /api/access-points/          → create (admin / site manager)
    """
    if request.method == "GET":
        site_ids, denied = site_scope(request, single=True)
        if denied:
            return denied
        qs = AccessPoint.objects.filter(site_id=site_ids[0], is_active=True).order_by("name")
        return ok([_access_point_dict(ap) for ap in qs])

    denied = role_error(request.user, *MANAGER_ROLES)
    if denied:
        return denied
    missing = require_fields(request.data, ["name", "site", "type"])
    if missing:
        return missing
    site = Site.objects.filter(pk=parse_uuid(request.data["site"])).first()
    if site is None:
        return err("Site not found.", status_code=status.HTTP_404_NOT_FOUND)
    if not request.user.can_access_site(site):
        return site_denied()
    ap = AccessPoint(site=site)
    _apply_access_point_fields(ap, request.data)
    invalid = _access_point_choices_error(ap)
    if invalid:
        return invalid
    ap.save()
    safely(_announce_access_point, ap, request.user)
    return ok(_access_point_dict(ap), message="Access point created.", status_code=status.HTTP_201_CREATED)


@api_view(["GET", "PUT", "PATCH", "DELETE"])
@permission_classes([IsAuthenticated])
def access_point_detail(request, access_point_id):
    """GET/PUT/PATCH/DELETE /api/access-points/<id>/"""
    ap = get_object_or_404(AccessPoint.objects.select_related("site"), id=access_point_id)
    if not request.user.can_access_site(ap.site_id):
        return site_denied()

    if request.method == "GET":
        return ok({
            **_access_point_dict(ap),
            "assigned_staff": [_user_dict(u) for u in ap.assigned_staff.all()],
        })

    denied = role_error(request.user, *MANAGER_ROLES)
    if denied:
        return denied

    if request.method in ("PUT", "PATCH"):
        before = {f: getattr(ap, f) for f in ACCESS_POINT_TRACKED}
        _apply_access_point_fields(ap, request.data)
        invalid = _access_point_choices_error(ap)
        if invalid:
            return invalid
        ap.save()
        if any(getattr(ap, f) != value for f, value in before.items()):
            safely(_announce_access_point, ap, request.user, updated=True)
        return ok(_access_point_dict(ap), message="Access point updated.")

    if ap.visitors.filter(status="CHECKED_IN").exists():
        return err("Cannot delete access point with active visitors")
    ap.delete()
    return ok(message="Access point deleted.")


@api_view(["PUT"])
@permission_classes([IsAuthenticated])
def access_point_assign_staff(request, access_point_id):
    """PUT /api/access-points/<id>/assign-staff/  Body: { "staff_ids": [...] }"""
    denied = role_error(request.user, *MANAGER_ROLES)
    if denied:
        return denied
    ap = get_object_or_404(AccessPoint, id=access_point_id)
    if not request.user.can_access_site(ap.site_id):
        return site_denied()
    staff_ids = request.data.get("staff_ids")
    if not isinstance(staff_ids, list):
        return err("staff_ids must be a list.")
    parsed = [parse_uuid(s) for s in staff_ids]
    if None in parsed:
        return err("staff_ids contains an invalid id.")
    staff = list(User.objects.filter(pk__in=parsed, assigned_site_id=ap.site_id))
    if len(staff) != len(set(parsed)):
        return err("All staff must be assigned to this access point's site.")
    ap.assigned_staff.set(staff)
    return ok({
        **_access_point_dict(ap),
        "assigned_staff": [_user_dict(u) for u in staff],
    }, message="Staff assigned.")


# =============================================================================
# 5. VISITORS  (Core Transaction)
# =============================================================================

CHECKIN_REQUIRED = ["full_name", "email", "phone", "company", "purpose", "access_point"]
VISITOR_EDITABLE = [
    "full_name", "phone", "company", "purpose", "contact_person", "notes", "security_notes",
    "host_name", "host_email", "host_phone", "host_department", "documents",
    "emergency_contact_name", "emergency_contact_phone", "emergency_contact_relationship",
]
CHECKIN_OPTIONAL = [
    "host_name", "host_email", "host_phone", "host_department", "documents",
    "emergency_contact_name", "emergency_contact_phone", "emergency_contact_relationship",
]


def _site_alert_recipients(site):
    """Emails of the people who must hear about a security event at `site`."""
    recipients = list(
        site.staff_members((ROLE_SITE_MANAGER, ROLE_SECURITY_GUARD))
        .exclude(email="").values_list("email", flat=True)
    )
    if site.admin and site.admin.email:
        recipients.append(site.admin.email)
    return recipients


def _raise_banned_alarm(user, site, access_point, attempt, ban):
    """Alert, email and push after a banned person is refused entry."""
    logger.warning(
        "Banned visitor %s refused at %s (%s)",
        attempt.get("full_name"), site.name, access_point.name if access_point else "-",
    )
    attempted = Visitor(
        full_name=attempt.get("full_name", ""),
        email=attempt.get("email", ""),
        company=attempt.get("company", ""),
        site=site,
        access_point=access_point,
    )
    safely(ActivityAlert.create_visitor_alert, "BANNED_VISITOR", attempted, user, access_point)
    safely(
        notifications.send_banned_visitor_alert, site,
        {**attempt, "access_point": access_point.name if access_point else ""},
        ban, _site_alert_recipients(site),
    )
    payload = {
        "visitor": {
            "full_name": attempt.get("full_name"),
            "email": attempt.get("email"),
            "company": attempt.get("company"),
        },
        "ban": {"id": str(ban.id), "reason": ban.reason, "banned_date": ban.banned_date},
        "site_id": str(site.id),
        "access_point": access_point.name if access_point else None,
        "attempted_by": user.full_name,
        "timestamp": timezone.now(),
    }
    emit("banned_visitor_alert", payload, site_id=site.id, broadcast=False)
    emit("security_alert", {**payload, "type": "banned_visitor"})


def _banned_response(ban):
    return err("Visitor is banned", details={
        "reason": ban.reason,
        "banned_date": ban.banned_date,
        "banned_by": ban.banned_by.full_name if ban.banned_by else None,
    })


def _refresh_company(visitor):
    if not visitor.company:
        return
    company = Company.objects.filter(name__iexact=visitor.company).first()
    if company:
        company.update_visitor_count()


def _after_check_in(visitor, user):
    """Occupancy, activity trail, alert and push for a completed check-in."""
    if visitor.access_point:
        visitor.access_point.update_occupancy()
    safely(Activity.create_check_in, visitor, user)
    safely(ActivityAlert.create_visitor_alert, "VISITOR_CHECKIN", visitor, user)
    safely(_refresh_company, visitor)
    data = _visitor_dict(visitor)
    emit("visitor_activity", {"type": "checkin", "visitor": data, "site_id": str(visitor.site_id)})
    emit("visitor_checked_in", data, site_id=visitor.site_id, broadcast=False)
    logger.info("Visitor %s checked in at %s [%s]", visitor.full_name, visitor.site.name, visitor.badge_number)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def visitor_list(request):
    """
    GET /api/visitors/?siteId=&status=&company=&access_point=&date=&search=&page=&limit=
    """
    denied = role_error(request.user, ROLE_SUPER_ADMIN, *FRONT_DESK_ROLES)
    if denied:
        return denied
    site_ids, denied = site_scope(request)
    if denied:
        return denied
    qs = Visitor.objects.filter(site_id__in=site_ids).select_related("site", "access_point")
    status_filter = request.GET.get("status")
    company = request.GET.get("company")
    access_point = parse_uuid(request.GET.get("access_point") or request.GET.get("accessPoint"))
    day = request.GET.get("date")
    search = request.GET.get("search")
    if status_filter:
        qs = qs.filter(status=choice(status_filter))
    if company:
        qs = qs.filter(company__icontains=company)
    if access_point:
        qs = qs.filter(access_point_id=access_point)
    if day:
        try:
            parsed = parse_date(day)
        except ValueError:
            parsed = None
        if parsed is None:
            return err("Invalid date. Use YYYY-MM-DD.")
        qs = qs.filter(check_in_time__date=parsed)
    if search:
        qs = qs.filter(
            Q(full_name__icontains=search) | Q(company__icontains=search) | Q(email__icontains=search)
        )
    return ok(paginate(qs.order_by("-check_in_time", "-created_at"), request, _visitor_dict))


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def visitor_current(request):
    """GET /api/visitors/current/ — everyone checked in at one site."""
    denied = role_error(request.user, ROLE_SUPER_ADMIN, *FRONT_DESK_ROLES)
    if denied:
        return denied
    site_ids, denied = site_scope(request, single=True)
    if denied:
        return denied
    qs = Visitor.objects.filter(site_id=site_ids[0], status="CHECKED_IN").select_related(
        "site", "access_point"
    ).order_by("-check_in_time")
    return ok([_visitor_dict(v) for v in qs])


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def visitor_checkin(request):
    """
    POST /api/visitors/checkin/
    Body: { full_name, email, phone, company, purpose, access_point,
            [contact_person, expected_duration, host_*, ppe_verified,
             safety_induction_completed, emergency_contact_*, notes] }
    Banned visitors are refused (400) and the site's security staff alerted.
    """
    user = request.user
    denied = role_error(user, ROLE_SUPER_ADMIN, *FRONT_DESK_ROLES)
    if denied:
        return denied
    data = request.data
    errors = field_errors(data, CHECKIN_REQUIRED)
    if not errors.get("email") and not valid_email(data["email"].strip()):
        errors["email"] = "Enter a valid email address."
    if errors:
        return err("Validation failed.", details=errors)

    access_point_id = parse_uuid(data["access_point"])
    access_point = AccessPoint.objects.select_related("site").filter(
        pk=access_point_id, is_active=True
    ).first() if access_point_id else None
    if access_point is None:
        return err("Invalid or inactive access point")
    site = access_point.site
    if not user.can_access_site(site):
        return site_denied()

    attempt = {
        "full_name": data["full_name"].strip(),
        "email": data["email"].strip().lower(),
        "company": data["company"].strip(),
    }
    ban = BannedVisitor.check_visitor(attempt["full_name"], attempt["email"], attempt["company"], site=site)
    if ban:
        _raise_banned_alarm(user, site, access_point, attempt, ban)
        return _banned_response(ban)

    now = timezone.now()
    inducted = as_bool(data.get("safety_induction_completed", False))
    visitor = Visitor(
        full_name=attempt["full_name"],
        email=attempt["email"],
        phone=data["phone"],
        company=attempt["company"],
        purpose=data["purpose"],
        contact_person=data.get("contact_person", ""),
        site=site,
        access_point=access_point,
        check_in_time=now,
        status="CHECKED_IN",
        expected_duration=max(1, as_int(data.get("expected_duration"), 4)),
        ppe_verified=as_bool(data.get("ppe_verified", False)),
        safety_induction_completed=inducted,
        safety_induction_date=now if inducted else None,
        notes=data.get("notes", ""),
        checked_in_by=user,
    )
    for f in CHECKIN_OPTIONAL:
        if f in data:
            setattr(visitor, f, data[f])
    visitor.save()
    visitor.qr_code = visitor.build_qr_payload()
    visitor.save(update_fields=["qr_code", "updated_at"])

    _after_check_in(visitor, user)
    return ok({
        "visitor": _visitor_dict(visitor, detail=True),
        "qr_code": visitor.qr_code,
    }, message="Visitor checked in successfully.", status_code=status.HTTP_201_CREATED)


@api_view(["PUT", "POST"])
@permission_classes([IsAuthenticated])
def visitor_checkout(request, visitor_id):
    """PUT /api/visitors/<id>/checkout/  Body: { ["notes"] }"""
    user = request.user
    denied = role_error(user, ROLE_SUPER_ADMIN, *FRONT_DESK_ROLES)
    if denied:
        return denied
    visitor = get_object_or_404(Visitor.objects.select_related("site", "access_point"), id=visitor_id)
    if not user.can_access_site(visitor.site_id):
        return site_denied()
    if visitor.status == "CHECKED_OUT":
        return err("Visitor is already checked out")
    if visitor.status == "PENDING":
        return err("Visitor has not checked in")

    visitor.check_out_time = timezone.now()
    visitor.status = "CHECKED_OUT"
    visitor.checked_out_by = user
    notes = request.data.get("notes")
    if notes:
        visitor.security_notes = f"{visitor.security_notes}\n{notes}".strip()
    visitor.save()
    if visitor.access_point:
        visitor.access_point.update_occupancy()

    safely(Activity.create_check_out, visitor, user)
    safely(ActivityAlert.create_visitor_alert, "VISITOR_CHECKOUT", visitor, user)
    safely(_refresh_company, visitor)
    data = _visitor_dict(visitor)
    emit("visitor_activity", {"type": "checkout", "visitor": data, "site_id": str(visitor.site_id)})
    emit("visitor_checked_out", data, site_id=visitor.site_id, broadcast=False)
    logger.info("Visitor %s checked out after %s", visitor.full_name, visitor.duration_display())
    return ok(_visitor_dict(visitor, detail=True), message="Visitor checked out successfully.")


@api_view(["GET", "PUT", "PATCH"])
@permission_classes([IsAuthenticated])
def visitor_detail(request, visitor_id):
    """
    GET /api/visitors/<id>/
    PUT /api/visitors/<id>/  → security guard / site manager edits
    """
    visitor = get_object_or_404(
        Visitor.objects.select_related("site", "access_point", "checked_in_by", "checked_out_by"),
        id=visitor_id,
    )
    if not request.user.can_access_site(visitor.site_id):
        return site_denied()
    if request.method == "GET":
        return ok(_visitor_dict(visitor, detail=True))

    denied = role_error(request.user, ROLE_SECURITY_GUARD, *MANAGER_ROLES)
    if denied:
        return denied
    for f in VISITOR_EDITABLE:
        if f in request.data:
            setattr(visitor, f, request.data[f])
    for f in ("ppe_verified", "safety_induction_completed"):
        if f in request.data:
            setattr(visitor, f, as_bool(request.data[f]))
    if visitor.safety_induction_completed and not visitor.safety_induction_date:
        visitor.safety_induction_date = timezone.now()
    if "expected_duration" in request.data:
        visitor.expected_duration = max(1, as_int(request.data["expected_duration"], visitor.expected_duration))
    if "special_access" in request.data:
        special = choice(request.data["special_access"])
        if special not in dict(Visitor.SPECIAL_ACCESS):
            return err("Invalid special access level.")
        visitor.special_access = special
        visitor.authorized_by = request.user if special != "NONE" else None
        visitor.special_access_expiry = parse_moment(request.data.get("special_access_expiry"))
    visitor.save()
    return ok(_visitor_dict(visitor, detail=True), message="Visitor updated.")


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def visitor_dashboard_stats(request):
    """GET /api/visitors/stats/dashboard/ — on-site count, today's total, hourly curve."""
    site_ids, denied = site_scope(request)
    if denied:
        return denied
    visitors = Visitor.objects.filter(site_id__in=site_ids)
    on_site = list(visitors.filter(status="CHECKED_IN"))
    hourly = [0] * 24
    for moment in visitors.filter(check_in_time__gte=start_of_today()).values_list("check_in_time", flat=True):
        hourly[timezone.localtime(moment).hour] += 1
    return ok({
        "currently_on_site": len(on_site),
        "todays_total": sum(hourly),
        "overstayed_visitors": sum(1 for v in on_site if v.has_overstayed()),
        "hourly_data": [{"hour": hour, "count": count} for hour, count in enumerate(hourly)],
    })


# =============================================================================
# 6. BANNED VISITORS
# =============================================================================

BANNED_EDITABLE = ["full_name", "email", "phone", "company", "reason", "description",
                   "incident_report", "evidence"]


def _banned_changed(ban, action):
    emit("banned_changed", {"action": action, "banned": _banned_dict(ban)}, site_id=ban.site_id)
    emit("reports_refresh", {"site_id": str(ban.site_id), "source": "banned"}, site_id=ban.site_id)


def _announce_ban(ban, user):
    Activity.objects.create(
        type="SECURITY_ALERT",
        title="Visitor Banned",
        description=f"{ban.full_name} was banned: {ban.reason}",
        site=ban.site,
        performed_by=user,
        priority="HIGH",
        metadata={"banned_visitor_id": str(ban.id), "company": ban.company},
    )
    ActivityAlert.create_system_alert(
        "Visitor Banned", f"{ban.full_name} has been added to the banned list. Reason: {ban.reason}",
        ban.site, severity="WARNING",
        target_roles=[ROLE_ADMIN, ROLE_SITE_MANAGER, ROLE_SECURITY_GUARD],
        metadata={"banned_visitor_id": str(ban.id)},
    )


@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
def banned_list_create(request):
    """
    GET  /api/banned-visitors/?siteId=&search=&page=&limit=
    POST /api/banned-visitors/   Body: { full_name, reason, site, [email, phone, company, ...] }
    """
    denied = role_error(request.user, *MANAGER_ROLES)
    if denied:
        return denied

    if request.method == "GET":
        site_ids, denied = site_scope(request)
        if denied:
            return denied
        qs = BannedVisitor.objects.filter(site_id__in=site_ids).select_related("site", "banned_by", "reviewed_by")
        if not as_bool(request.GET.get("include_inactive", False)):
            qs = qs.filter(is_active=True)
        search = request.GET.get("search")
        if search:
            qs = qs.filter(
                Q(full_name__icontains=search) | Q(email__icontains=search) |
                Q(company__icontains=search) | Q(reason__icontains=search)
            )
        return ok(paginate(qs.order_by("-banned_date"), request, _banned_dict))

    missing = require_fields(request.data, ["full_name", "reason", "site"])
    if missing:
        return missing
    site = Site.objects.filter(pk=parse_uuid(request.data["site"])).first()
    if site is None:
        return err("Site not found.", status_code=status.HTTP_404_NOT_FOUND)
    if not request.user.can_access_site(site):
        return site_denied()
    email = str(request.data.get("email") or "").strip().lower()
    if email and not valid_email(email):
        return err("Please provide a valid email.", details={"email": "Enter a valid email address."})
    if BannedVisitor.check_visitor(request.data["full_name"], email, site=site):
        return err("Visitor is already banned")

    ban = BannedVisitor(site=site, banned_by=request.user)
    for f in BANNED_EDITABLE:
        if f in request.data:
            setattr(ban, f, request.data[f])
    ban.email = email
    ban.expiry_date = parse_moment(request.data.get("expiry_date"))
    ban.save()
    safely(_announce_ban, ban, request.user)
    _banned_changed(ban, "created")
    logger.info("%s banned from %s by %s", ban.full_name, site.name, request.user.email)
    return ok(_banned_dict(ban), message="Visitor banned successfully.", status_code=status.HTTP_201_CREATED)


@api_view(["GET", "PUT", "PATCH", "DELETE"])
@permission_classes([IsAuthenticated])
def banned_detail(request, banned_id):
    """GET/PUT/PATCH/DELETE /api/banned-visitors/<id>/ — DELETE lifts the ban (soft)."""
    denied = role_error(request.user, *MANAGER_ROLES)
    if denied:
        return denied
    ban = get_object_or_404(BannedVisitor.objects.select_related("site", "banned_by"), id=banned_id)
    if not request.user.can_access_site(ban.site_id):
        return site_denied()

    if request.method == "GET":
        return ok({
            **_banned_dict(ban),
            "related_incidents": [_incident_dict(i) for i in ban.related_incidents.all()],
        })

    if request.method in ("PUT", "PATCH"):
        for f in BANNED_EDITABLE:
            if f in request.data:
                setattr(ban, f, request.data[f])
        if "email" in request.data:
            ban.email = str(request.data["email"] or "").strip().lower()
        if "expiry_date" in request.data:
            ban.expiry_date = parse_moment(request.data["expiry_date"])
        if "is_active" in request.data:
            ban.is_active = as_bool(request.data["is_active"])
        if "appeal_status" in request.data:
            appeal = choice(request.data["appeal_status"])
            if appeal not in dict(BannedVisitor.APPEAL_STATUS):
                return err("Invalid appeal status.")
            ban.appeal_status = appeal
        if "related_incidents" in request.data and isinstance(request.data["related_incidents"], list):
            ids = [parse_uuid(i) for i in request.data["related_incidents"]]
            ban.related_incidents.set(Incident.objects.filter(pk__in=[i for i in ids if i], site=ban.site))
        ban.save()
        _banned_changed(ban, "updated")
        return ok(_banned_dict(ban), message="Banned visitor updated.")

    ban.is_active = False
    ban.save(update_fields=["is_active", "updated_at"])
    _banned_changed(ban, "deleted")
    logger.info("Ban on %s lifted by %s", ban.full_name, request.user.email)
    return ok(message="Visitor unbanned successfully.")


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def banned_review(request, banned_id):
    """POST /api/banned-visitors/<id>/review/  Body: { review_notes, [appeal_status] }"""
    denied = role_error(request.user, *MANAGER_ROLES)
    if denied:
        return denied
    ban = get_object_or_404(BannedVisitor, id=banned_id)
    if not request.user.can_access_site(ban.site_id):
        return site_denied()
    missing = require_fields(request.data, ["review_notes"])
    if missing:
        return missing
    ban.review_notes = request.data["review_notes"]
    ban.reviewed_by = request.user
    ban.review_date = timezone.now()
    if "appeal_status" in request.data:
        appeal = choice(request.data["appeal_status"])
        if appeal not in dict(BannedVisitor.APPEAL_STATUS):
            return err("Invalid appeal status.")
        ban.appeal_status = appeal
    ban.save()
    _banned_changed(ban, "reviewed")
    return ok(_banned_dict(ban), message="Review recorded.")


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def banned_check(request):
    """
    POST /api/banned-visitors/check/
    Body: { full_name, [email, company, siteId] }
    """
    denied = role_error(request.user, ROLE_SUPER_ADMIN, *FRONT_DESK_ROLES)
    if denied:
        return denied
    site_ids, denied = site_scope(
        request, single=True, site_id=request.data.get("siteId") or request.data.get("site_id")
    )
    if denied:
        return denied
    full_name = request.data.get("full_name", "")
    email = request.data.get("email", "")
    company = request.data.get("company", "")
    if is_blank(full_name) and is_blank(email) and is_blank(company):
        return err("Provide full_name, email, or company.")
    ban = BannedVisitor.check_visitor(full_name, email, company, site=Site.objects.get(pk=site_ids[0]))
    if ban:
        return ok({
            "banned": True,
            "reason": ban.reason,
            "banned_date": ban.banned_date,
            "expiry_date": ban.expiry_date,
            "banned_by": ban.banned_by.full_name if ban.banned_by else None,
        }, message="Person is banned.")
    return ok({"banned": False}, message="No ban found.")


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def banned_stats(request):
    """GET /api/banned-visitors/stats/dashboard/"""
    denied = role_error(request.user, *MANAGER_ROLES)
    if denied:
        return denied
    site_ids, denied = site_scope(request)
    if denied:
        return denied
    active = BannedVisitor.objects.filter(site_id__in=site_ids, is_active=True)
    month_start = start_of_today().replace(day=1)
    return ok({
        "total_banned": active.count(),
        "bans_this_month": active.filter(banned_date__gte=month_start).count(),
        "pending_review": active.filter(reviewed_by__isnull=True).count(),
        "unique_reasons": active.values("reason").distinct().count(),
    })


# =============================================================================
# 7. INCIDENTS
# =============================================================================

INCIDENT_TEXT_FIELDS = [
    "title", "description", "building", "floor", "specific_location", "findings",
    "recommendations", "authority_contact", "report_number", "resolution_notes", "lessons_learned",
]
INCIDENT_LIST_FIELDS = ["people_involved", "witnesses", "corrective_actions",
                        "follow_up_actions", "evidence", "tags"]


def _incident_changed(incident, action):
    emit("incident_changed", {"action": action, "incident": _incident_dict(incident)}, site_id=incident.site_id)
    emit("reports_refresh", {"site_id": str(incident.site_id), "source": "incidents"}, site_id=incident.site_id)


def _apply_incident_fields(incident, data):
    """Copy editable fields from `data`; returns an error response or None."""
    for f in INCIDENT_TEXT_FIELDS:
        if f in data:
            setattr(incident, f, data[f] or "")
    for f in INCIDENT_LIST_FIELDS:
        if f in data:
            if not isinstance(data[f], list):
                return err(f"{f} must be a list.")
            setattr(incident, f, data[f])
    if "type" in data:
        incident.incident_type = choice(data["type"])
        if incident.incident_type not in dict(Incident.TYPE_CHOICES):
            return err("Invalid incident type.", details={"type": f"Must be one of: {', '.join(dict(Incident.TYPE_CHOICES))}"})
    if "severity" in data:
        incident.severity = choice(data["severity"])
        if incident.severity not in dict(Incident.SEVERITY_CHOICES):
            return err("Invalid severity.", details={"severity": f"Must be one of: {', '.join(dict(Incident.SEVERITY_CHOICES))}"})
    if "incident_date" in data:
        incident.incident_date = parse_moment(data["incident_date"])
        if incident.incident_date is None:
            return err("Invalid incident_date.", details={"incident_date": "Use an ISO 8601 date or datetime."})
    for f in ("latitude", "longitude"):
        if f in data:
            setattr(incident, f, data[f] or None)
    if "reported_to_authorities" in data:
        incident.reported_to_authorities = as_bool(data["reported_to_authorities"])
    if "report_date" in data:
        incident.report_date = parse_moment(data["report_date"])
    if "access_point" in data:
        ap_id = parse_uuid(data["access_point"])
        incident.access_point = AccessPoint.objects.filter(pk=ap_id, site_id=incident.site_id).first() if ap_id else None
    return None


@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
def incident_list_create(request):
    """
    GET  /api/incidents/?siteId=&status=&type=&severity=&page=&limit=
    POST /api/incidents/  Body: { title, description, type, severity, incident_date, site, ... }
    """
    if request.method == "GET":
        site_ids, denied = site_scope(request)
        if denied:
            return denied
        qs = Incident.objects.filter(site_id__in=site_ids).select_related("site", "reported_by", "assigned_to")
        for param, field in (("status", "status"), ("type", "incident_type"), ("severity", "severity")):
            value = request.GET.get(param)
            if value:
                qs = qs.filter(**{field: choice(value)})
        return ok(paginate(qs.order_by("-incident_date"), request, _incident_dict))

    missing = require_fields(request.data, ["title", "description", "type", "severity", "incident_date", "site"])
    if missing:
        return missing
    site = Site.objects.filter(pk=parse_uuid(request.data["site"])).first()
    if site is None:
        return err("Site not found.", status_code=status.HTTP_404_NOT_FOUND)
    if not request.user.can_access_site(site):
        return site_denied()
    incident = Incident(site=site, reported_by=request.user)
    invalid = _apply_incident_fields(incident, request.data)
    if invalid:
        return invalid
    incident.save()
    safely(
        Activity.objects.create,
        type="INCIDENT",
        title=f"Incident Reported: {incident.title}",
        description=incident.description[:500],
        site=site,
        incident=incident,
        access_point=incident.access_point,
        performed_by=request.user,
        priority=incident.severity,
        metadata={"incident_type": incident.incident_type, "severity": incident.severity},
    )
    _incident_changed(incident, "created")
    logger.info("Incident '%s' (%s) reported at %s", incident.title, incident.severity, site.name)
    return ok(_incident_dict(incident, detail=True), message="Incident reported.",
              status_code=status.HTTP_201_CREATED)


@api_view(["GET", "PUT", "PATCH"])
@permission_classes([IsAuthenticated])
def incident_detail(request, incident_id):
    """GET/PUT/PATCH /api/incidents/<id>/"""
    incident = get_object_or_404(Incident.objects.select_related("site"), id=incident_id)
    if not request.user.can_access_site(incident.site_id):
        return site_denied()
    if request.method == "GET":
        return ok(_incident_dict(incident, detail=True))

    invalid = _apply_incident_fields(incident, request.data)
    if invalid:
        return invalid
    if "status" in request.data:
        new_status = choice(request.data["status"])
        if new_status not in dict(Incident.STATUS_CHOICES):
            return err("Invalid status.")
        if new_status in ("RESOLVED", "CLOSED") and not incident.resolved_date:
            incident.resolved_by = request.user
            incident.resolved_date = timezone.now()
        incident.status = new_status
    incident.save()
    _incident_changed(incident, "updated")
    return ok(_incident_dict(incident, detail=True), message="Incident updated.")


@api_view(["PUT"])
@permission_classes([IsAuthenticated])
def incident_assign(request, incident_id):
    """PUT /api/incidents/<id>/assign/  Body: { assigned_to }"""
    denied = role_error(request.user, *MANAGER_ROLES)
    if denied:
        return denied
    incident = get_object_or_404(Incident, id=incident_id)
    if not request.user.can_access_site(incident.site_id):
        return site_denied()
    assignee = User.objects.filter(pk=parse_uuid(request.data.get("assigned_to")), is_active=True).first()
    if assignee is None:
        return err("Field 'assigned_to' must be an active user.")
    if not assignee.can_access_site(incident.site_id):
        return err("Assignee does not work at this site.")
    incident.assigned_to = assignee
    incident.investigation_start = incident.investigation_start or timezone.now()
    incident.status = "INVESTIGATING"
    incident.save()
    _incident_changed(incident, "assigned")
    return ok(_incident_dict(incident, detail=True), message="Incident assigned.")


@api_view(["PUT"])
@permission_classes([IsAuthenticated])
def incident_resolve(request, incident_id):
    """PUT /api/incidents/<id>/resolve/  Body: { resolution_notes, [lessons_learned] }"""
    denied = role_error(request.user, *MANAGER_ROLES)
    if denied:
        return denied
    incident = get_object_or_404(Incident, id=incident_id)
    if not request.user.can_access_site(incident.site_id):
        return site_denied()
    missing = require_fields(request.data, ["resolution_notes"])
    if missing:
        return missing
    now = timezone.now()
    incident.status = "RESOLVED"
    incident.resolution_notes = request.data["resolution_notes"]
    incident.lessons_learned = request.data.get("lessons_learned", incident.lessons_learned)
    incident.resolved_by = request.user
    incident.resolved_date = now
    incident.investigation_end = incident.investigation_end or now
    incident.save()
    _incident_changed(incident, "resolved")
    return ok(_incident_dict(incident, detail=True), message="Incident resolved.")


# =============================================================================
# 8. COMPANIES
# =============================================================================

COMPANY_FIELDS = ["street", "city", "state", "zip_code", "country", "notes"]


def _apply_company_fields(company, data):
    contact = data.get("contact_info") if isinstance(data.get("contact_info"), dict) else {}
    address = data.get("address") if isinstance(data.get("address"), dict) else {}
    email = contact.get("email", data.get("contact_email"))
    phone = contact.get("phone", data.get("contact_phone"))
    if email is not None:
        company.contact_email = str(email).strip().lower()
    if phone is not None:
        company.contact_phone = str(phone).strip()
    for f in COMPANY_FIELDS:
        if f in address:
            setattr(company, f, address[f])
        elif f in data:
            setattr(company, f, data[f])
    if "name" in data:
        company.name = str(data["name"]).strip()
    if "is_active" in data:
        company.is_active = as_bool(data["is_active"])


def _company_errors(company):
    errors = {}
    if not company.name:
        errors["name"] = "This field is required."
    if not company.contact_email:
        errors["contact_info.email"] = "This field is required."
    elif not valid_email(company.contact_email):
        errors["contact_info.email"] = "Enter a valid email address."
    if not company.contact_phone:
        errors["contact_info.phone"] = "This field is required."
    if company.name and Company.objects.filter(name__iexact=company.name).exclude(pk=company.pk).exists():
        return err("Company with this name already exists")
    if errors:
        return err("Validation failed.", details=errors)
    return None


@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
def company_list_create(request):
    """
    GET  /api/companies/?search=&status=active|inactive&page=&limit=
    POST /api/companies/  Body: { name, contact_info: {email, phone}, [address, notes] }
    """
    denied = role_error(request.user, ROLE_SUPER_ADMIN, *MANAGER_ROLES)
    if denied:
        return denied

    if request.method == "GET":
        qs = Company.objects.select_related("created_by")
        search = request.GET.get("search")
        company_status = (request.GET.get("status") or "").lower()
        if search:
            qs = qs.filter(Q(name__icontains=search) | Q(contact_email__icontains=search))
        if company_status in ("active", "inactive"):
            qs = qs.filter(is_active=company_status == "active")
        return ok(paginate(qs.order_by("name"), request, _company_dict))

    company = Company(created_by=request.user, updated_by=request.user)
    _apply_company_fields(company, request.data)
    invalid = _company_errors(company)
    if invalid:
        return invalid
    company.save()
    company.update_visitor_count()
    return ok(_company_dict(company), message="Company created.", status_code=status.HTTP_201_CREATED)


@api_view(["GET", "PUT", "PATCH", "DELETE"])
@permission_classes([IsAuthenticated])
def company_detail(request, company_id):
    """GET/PUT/PATCH/DELETE /api/companies/<id>/"""
    denied = role_error(request.user, ROLE_SUPER_ADMIN, *MANAGER_ROLES)
    if denied:
        return denied
    company = get_object_or_404(Company, id=company_id)
    if request.method == "GET":
        return ok(_company_dict(company))
    if request.method in ("PUT", "PATCH"):
        _apply_company_fields(company, request.data)
        invalid = _company_errors(company)
        if invalid:
            return invalid
        company.updated_by = request.user
        company.save()
        return ok(_company_dict(company), message="Company updated.")
    company.delete()
    return ok(message="Company deleted.")


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def company_stats(request):
    """GET /api/companies/stats/"""
    denied = role_error(request.user, ROLE_SUPER_ADMIN, *MANAGER_ROLES)
    if denied:
        return denied
    return ok(Company.stats())


# =============================================================================
# 9. SUBSCRIPTIONS
# =============================================================================

def _plan_and_months(data, default_months=None):
    """Validate plan / duration_months; returns (plan, months, error)."""
    plan = choice(data.get("plan"))
    if plan not in Subscription.PLAN_MEMBER_LIMITS:
        return None, None, err("Invalid plan.", details={
            "plan": f"Must be one of: {', '.join(p.lower() for p in Subscription.PLAN_MEMBER_LIMITS)}",
        })
    months = as_int(data.get("duration_months", default_months), 0)
    if months < 1:
        return None, None, err("duration_months must be at least 1.")
    return plan, months, None


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def subscription_create(request):
    """
    POST /api/subscriptions/  Body: { plan, duration_months }
    Creates or renews the calling admin's subscription.
    """
    denied = role_error(request.user, ROLE_ADMIN)
    if denied:
        return denied
    plan, months, invalid = _plan_and_months(request.data)
    if invalid:
        return invalid
    subscription = Subscription.activate_for(request.user, plan, months)
    _sync_site_subscription(request.user, subscription)
    log_action(request.user, "SUBSCRIPTION", "Subscription", subscription.id,
               f"{plan} plan activated for {months} month(s)", request)
    logger.info("%s activated %s for %d month(s)", request.user.email, plan, months)
    return ok(_subscription_dict(subscription), message="Subscription activated.",
              status_code=status.HTTP_201_CREATED)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def subscription_admin(request):
    """GET /api/subscriptions/admin/ — the calling admin's subscription."""
    denied = role_error(request.user, ROLE_ADMIN)
    if denied:
        return denied
    subscription = Subscription.objects.filter(admin=request.user).first()
    return ok({
        "has_subscription": bool(subscription and subscription.is_current()),
        "subscription": _subscription_dict(subscription),
    })


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def subscription_all(request):
    """GET /api/subscriptions/all/ (super admin)"""
    denied = role_error(request.user, ROLE_SUPER_ADMIN)
    if denied:
        return denied
    qs = Subscription.objects.select_related("admin").order_by("-created_at")
    return ok([{**_subscription_dict(s), "admin": _user_dict(s.admin)} for s in qs])


@api_view(["PUT"])
@permission_classes([IsAuthenticated])
def subscription_status(request, subscription_id):
    """PUT /api/subscriptions/<id>/status/  Body: { status: active|canceled|expired }"""
    denied = role_error(request.user, ROLE_SUPER_ADMIN)
    if denied:
        return denied
    subscription = get_object_or_404(Subscription, id=subscription_id)
    new_status = choice(request.data.get("status"))
    if new_status not in dict(Subscription.STATUS_CHOICES):
        return err("Invalid status.", details={"status": "Must be one of: active, canceled, expired"})
    subscription.status = new_status
    subscription.save(update_fields=["status", "updated_at"])
    _sync_site_subscription(subscription.admin, subscription)
    log_action(request.user, "SUBSCRIPTION", "Subscription", subscription.id,
               f"Status set to {new_status}", request)
    return ok(_subscription_dict(subscription), message="Subscription status updated.")


# =============================================================================
# 10. SUPER ADMIN CONSOLE
# =============================================================================

def _admin_summary(admin):
    subscription = Subscription.objects.filter(admin=admin).first()
    return {
        **_user_dict(admin),
        "created_at": admin.created_at,
        "last_login": admin.last_login,
        "site_count": admin.owned_sites().count(),
        "subscription": _subscription_dict(subscription),
    }


def _tenant_admin_or_404(admin_id):
    return get_object_or_404(User, id=admin_id, role=ROLE_ADMIN)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def admin_list(request):
    """GET /api/admin/admins/?search="""
    denied = role_error(request.user, ROLE_SUPER_ADMIN)
    if denied:
        return denied
    qs = User.objects.filter(role=ROLE_ADMIN).order_by("-created_at")
    search = request.GET.get("search")
    if search:
        qs = qs.filter(Q(full_name__icontains=search) | Q(email__icontains=search))
    return ok([_admin_summary(a) for a in qs])


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def admin_details(request, admin_id):
    """GET /api/admin/<id>/details/ — admin, their sites and team."""
    denied = role_error(request.user, ROLE_SUPER_ADMIN)
    if denied:
        return denied
    admin = _tenant_admin_or_404(admin_id)
    return ok({
        **_admin_summary(admin),
        "sites": [_site_dict(s) for s in admin.owned_sites()],
        "team": [_user_dict(u) for u in admin.team.all()],
    })


@api_view(["PUT"])
@permission_classes([IsAuthenticated])
def admin_activate(request, admin_id):
    """PUT /api/admin/<id>/activate/  Body: { is_active }"""
    denied = role_error(request.user, ROLE_SUPER_ADMIN)
    if denied:
        return denied
    target = get_object_or_404(User, id=admin_id)
    if target.pk == request.user.pk:
        return err("You cannot change your own status")
    if not target.is_tenant_admin:
        return err("User is not an admin")
    target.is_active = as_bool(request.data.get("is_active", not target.is_active))
    target.save(update_fields=["is_active", "updated_at"])
    action = "ACTIVATE" if target.is_active else "DEACTIVATE"
    log_action(request.user, action, "User", target.id, f"Admin {target.email} {action.lower()}d", request)
    return ok(_admin_summary(target), message=f"Admin {action.lower()}d successfully.")


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def admin_register(request):
    """
    POST /api/admin/register-admin/
    Body: { full_name, email, password, [plan, site_name, phone] }
    New tenant with a one-month subscription, default site and access points.
    """
    denied = role_error(request.user, ROLE_SUPER_ADMIN)
    if denied:
        return denied
    missing = require_fields(request.data, ["full_name", "email", "password"])
    if missing:
        return missing
    email = request.data["email"].strip().lower()
    if not valid_email(email):
        return err("Please provide a valid email.")
    if len(request.data["password"]) < MIN_PASSWORD_LENGTH:
        return err(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    plan = choice(request.data.get("plan") or "STARTER")
    if plan not in Subscription.PLAN_MEMBER_LIMITS:
        return err("Invalid plan.")
    if User.objects.filter(email=email).exists():
        return err("User already exists")

    admin, site = _create_tenant(
        request.data["full_name"].strip(), email, request.data["password"],
        site_name=request.data.get("site_name"), phone=request.data.get("phone", ""),
    )
    subscription = Subscription.activate_for(admin, plan, 1)
    _sync_site_subscription(admin, subscription)
    log_action(request.user, "CREATE", "User", admin.id, f"Admin {email} registered", request, site=site)
    return ok({
        **_admin_summary(admin),
        "site": _site_dict(site),
    }, message="Admin registered successfully.", status_code=status.HTTP_201_CREATED)


@api_view(["DELETE"])
@permission_classes([IsAuthenticated])
def admin_delete(request, admin_id):
    """DELETE /api/admin/<id>/ — removes the admin and their subscription."""
    denied = role_error(request.user, ROLE_SUPER_ADMIN)
    if denied:
        return denied
    target = get_object_or_404(User, id=admin_id)
    if target.pk == request.user.pk:
        return err("You cannot delete your own account")
    if target.is_super_admin:
        return err("Cannot delete a super admin")
    log_action(request.user, "DELETE", "User", target.id, f"Admin {target.email} deleted", request)
    Subscription.objects.filter(admin=target).delete()
    target.delete()
    return ok(message="Admin deleted successfully.")


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def admin_activate_subscription_by_email(request):
    """POST /api/admin/subscription/activate-by-email/  Body: { email } — 12-month enterprise."""
    denied = role_error(request.user, ROLE_SUPER_ADMIN)
    if denied:
        return denied
    email = str(request.data.get("email") or "").strip().lower()
    if not email:
        return err("Field 'email' is required.")
    admin = User.objects.filter(email=email, role=ROLE_ADMIN).first()
    if admin is None:
        return err("Admin not found.", status_code=status.HTTP_404_NOT_FOUND)
    subscription = Subscription.activate_for(admin, "ENTERPRISE", 12)
    _sync_site_subscription(admin, subscription)
    log_action(request.user, "SUBSCRIPTION", "Subscription", subscription.id,
               f"Enterprise activated for {email}", request)
    return ok(_subscription_dict(subscription), message="Subscription activated.")


@api_view(["GET", "PUT"])
@permission_classes([IsAuthenticated])
def admin_subscription(request, admin_id):
    """
    GET /api/admin/<id>/subscription/
    PUT /api/admin/<id>/subscription/  Body: { plan, duration_months, [status] }
    """
    denied = role_error(request.user, ROLE_SUPER_ADMIN)
    if denied:
        return denied
    admin = _tenant_admin_or_404(admin_id)
    if request.method == "GET":
        return ok(_subscription_dict(Subscription.objects.filter(admin=admin).first()))

    plan, months, invalid = _plan_and_months(request.data, default_months=1)
    if invalid:
        return invalid
    subscription = Subscription.activate_for(admin, plan, months)
    if request.data.get("status"):
        new_status = choice(request.data["status"])
        if new_status not in dict(Subscription.STATUS_CHOICES):
            return err("Invalid status.")
        subscription.status = new_status
        subscription.save(update_fields=["status", "updated_at"])
    _sync_site_subscription(admin, subscription)
    log_action(request.user, "SUBSCRIPTION", "Subscription", subscription.id,
               f"{plan} set for {months} month(s)", request)
    return ok(_subscription_dict(subscription), message="Subscription updated.")


# =============================================================================
# 11. EMERGENCY
# =============================================================================

EMERGENCY_WINDOW = timedelta(hours=24)


def _emergency_site(request):
    """Single site from body/query siteId, else the caller's own site."""
    raw = None
    if request.method != "GET":
        raw = request.data.get("siteId") or request.data.get("site_id")
    site_ids, denied = site_scope(request, single=True, site_id=raw)
    if denied:
        return None, denied
    return Site.objects.select_related("admin").get(pk=site_ids[0]), None


def _emergency_contacts(site):
    staff = list(site.staff_members((ROLE_SITE_MANAGER, ROLE_SECURITY_GUARD)))
    if site.admin and site.admin.is_active:
        staff.insert(0, site.admin)
    return staff


def _emergency_phones(site):
    phones = [u.phone for u in site.staff_members(STAFF_ROLES) if u.phone]
    if site.admin and site.admin.phone:
        phones.append(site.admin.phone)
    if site.emergency_phone:
        phones.append(site.emergency_phone)
    return phones


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def emergency_visitors(request):
    """GET /api/emergency/visitors/ — muster list of everyone on site."""
    site, denied = _emergency_site(request)
    if denied:
        return denied
    qs = Visitor.objects.filter(site=site, status="CHECKED_IN").select_related("access_point").order_by("full_name")
    return ok({
        "site": _site_ref(site),
        "count": qs.count(),
        "visitors": [_visitor_dict(v, detail=True) for v in qs],
    })


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def emergency_contacts(request):
    """GET /api/emergency/contacts/"""
    site, denied = _emergency_site(request)
    if denied:
        return denied
    return ok({
        "staff": [_user_dict(u) for u in _emergency_contacts(site)],
        "site_contacts": site.get_setting("emergency_contacts"),
        "emergency_phone": site.emergency_phone,
    })


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def emergency_activate(request):
    """
    POST /api/emergency/activate/
    Body: { type: evacuation|lockdown|medical|security|fire, message, [location, siteId] }
    """
    user = request.user
    denied = role_error(user, ROLE_SUPER_ADMIN, ROLE_ADMIN, ROLE_SITE_MANAGER, ROLE_SECURITY_GUARD)
    if denied:
        return denied
    emergency_type = choice(request.data.get("type") or request.data.get("emergency_type"))
    if emergency_type not in EMERGENCY_TYPES:
        return err("Invalid emergency type.", details={
            "type": f"Must be one of: {', '.join(t.lower() for t in EMERGENCY_TYPES)}",
        })
    missing = require_fields(request.data, ["message"])
    if missing:
        return missing
    site, denied = _emergency_site(request)
    if denied:
        return denied

    now = timezone.now()
    message = request.data["message"]
    activity = Activity.objects.create(
        type="EMERGENCY_ACTIVATED",
        title=f"Emergency Alert: {emergency_type.title()}",
        description=message,
        site=site,
        performed_by=user,
        priority="CRITICAL",
        timestamp=now,
        metadata={
            "emergency_type": emergency_type,
            "message": message,
            "location": request.data.get("location", ""),
            "activated_by": user.full_name,
            "activated_at": now.isoformat(),
        },
    )
    safely(
        ActivityAlert.create_system_alert,
        f"EMERGENCY: {emergency_type}", message, site, severity="CRITICAL",
        target_roles=[ROLE_ADMIN, ROLE_SITE_MANAGER, ROLE_SECURITY_GUARD, ROLE_RECEPTIONIST],
        metadata={"activity_id": str(activity.id), "emergency_type": emergency_type},
    )
    payload = {
        "activity": _activity_dict(activity),
        "emergency_type": emergency_type,
        "message": message,
        "site_id": str(site.id),
        "site_name": site.name,
    }
    emit("emergency_alert", payload)
    emit("emergency_activated", payload, site_id=site.id, broadcast=False)
    sms = safely(
        notifications.send_sms_batch, _emergency_phones(site),
        f"EMERGENCY ({emergency_type}) at {site.name}: {message}",
    ) or {"sent": 0, "failures": []}
    logger.warning("Emergency %s activated at %s by %s", emergency_type, site.name, user.email)
    return ok({
        "activity": _activity_dict(activity),
        "emergency_type": emergency_type,
        "sms": sms,
    }, message="Emergency activated.", status_code=status.HTTP_201_CREATED)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def emergency_deactivate(request):
    """POST /api/emergency/deactivate/  Body: { [message, siteId] }"""
    user = request.user
    denied = role_error(user, ROLE_SUPER_ADMIN, ROLE_ADMIN, ROLE_SITE_MANAGER, ROLE_SECURITY_GUARD)
    if denied:
        return denied
    site, denied = _emergency_site(request)
    if denied:
        return denied
    message = request.data.get("message") or "The emergency has been resolved. Resume normal operations."
    activity = Activity.objects.create(
        type="EMERGENCY_DEACTIVATED",
        title="Emergency Deactivated",
        description=message,
        site=site,
        performed_by=user,
        priority="HIGH",
        metadata={"deactivated_by": user.full_name, "deactivated_at": timezone.now().isoformat()},
    )
    safely(
        ActivityAlert.create_system_alert,
        "Emergency Deactivated", message, site, severity="INFO",
        target_roles=[ROLE_ADMIN, ROLE_SITE_MANAGER, ROLE_SECURITY_GUARD, ROLE_RECEPTIONIST],
        metadata={"activity_id": str(activity.id)},
    )
    payload = {"activity": _activity_dict(activity), "message": message, "site_id": str(site.id)}
    emit("emergency_deactivated", payload, site_id=site.id)
    logger.info("Emergency deactivated at %s by %s", site.name, user.email)
    return ok({"activity": _activity_dict(activity)}, message="Emergency deactivated.")


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def emergency_notify(request):
    """
    POST /api/emergency/notify/
    Body: { recipients: ["+1555..", "a@b.com", {phone, email}], message, type: sms|email|both }
    """
    denied = role_error(request.user, ROLE_SUPER_ADMIN, ROLE_ADMIN, ROLE_SITE_MANAGER, ROLE_SECURITY_GUARD)
    if denied:
        return denied
    recipients = request.data.get("recipients")
    if not isinstance(recipients, list) or not recipients:
        return err("Field 'recipients' must be a non-empty list.")
    missing = require_fields(request.data, ["message"])
    if missing:
        return missing
    notify_type = choice(request.data.get("type") or "SMS")
    if notify_type not in NOTIFY_TYPES:
        return err("Invalid notification type.", details={"type": "Must be one of: sms, email, both"})
    site, denied = _emergency_site(request)
    if denied:
        return denied

    phones, emails = [], []
    for recipient in recipients:
        if isinstance(recipient, dict):
            phones.append(recipient.get("phone"))
            emails.append(recipient.get("email"))
        elif "@" in str(recipient):
            emails.append(str(recipient))
        else:
            phones.append(str(recipient))
    message = request.data["message"]
    result = {"sms": None, "email_sent": None}
    if notify_type in ("SMS", "BOTH"):
        result["sms"] = safely(notifications.send_sms_batch, phones, message) or {"sent": 0, "failures": []}
    if notify_type in ("EMAIL", "BOTH"):
        result["email_sent"] = bool(safely(notifications.send_emergency_email, [e for e in emails if e], site, message))
    safely(
        Activity.objects.create,
        type="EMERGENCY_NOTIFICATION",
        title="Emergency Notification Sent",
        description=message,
        site=site,
        performed_by=request.user,
        priority="HIGH",
        metadata={"type": notify_type, "recipient_count": len(recipients)},
    )
    return ok(result, message="Notifications processed.")


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def emergency_status(request):
    """
    GET /api/emergency/status/
    Active when the newest activation in the last 24h is newer than any deactivation.
    """
    site, denied = _emergency_site(request)
    if denied:
        return denied
    recent = Activity.objects.filter(site=site, timestamp__gte=timezone.now() - EMERGENCY_WINDOW)
    activations = list(recent.filter(type="EMERGENCY_ACTIVATED").order_by("-timestamp")[:10])
    deactivations = list(recent.filter(type="EMERGENCY_DEACTIVATED").order_by("-timestamp")[:10])
    latest_on = activations[0] if activations else None
    latest_off = deactivations[0] if deactivations else None
    active = latest_on is not None and (latest_off is None or latest_on.timestamp > latest_off.timestamp)
    return ok({
        "is_emergency_active": active,
        "active_emergency": _activity_dict(latest_on) if active else None,
        "recent_emergencies": [_activity_dict(a) for a in activations],
        "recent_deactivations": [_activity_dict(a) for a in deactivations],
    })


# =============================================================================
# 12. ACTIVITIES & ALERTS
# =============================================================================

@api_view(["GET"])
@permission_classes([IsAuthenticated])
def activity_recent(request):
    """GET /api/activities/recent/?siteId=&type=&page=&limit="""
    site_ids, denied = site_scope(request)
    if denied:
        return denied
    qs = Activity.objects.filter(site_id__in=site_ids).select_related("visitor", "access_point", "performed_by")
    activity_type = request.GET.get("type")
    if activity_type:
        qs = qs.filter(type=choice(activity_type))
    return ok(paginate(qs.order_by("-timestamp"), request, _activity_dict, per_page=20))


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def alert_list(request):
    """
    GET /api/activities/alerts/?status=unread|all|<status>&severity=&page=&limit=
    Only alerts aimed at the caller's role or at the caller directly.
    """
    user = request.user
    site_ids, denied = site_scope(request)
    if denied:
        return denied
    alert_status = (request.GET.get("status") or "unread").lower()
    if alert_status == "unread":
        qs = ActivityAlert.unread_for(user, site_ids)
    else:
        qs = ActivityAlert.objects.filter(
            site_id__in=site_ids, expires_at__gt=timezone.now()
        ).filter(ActivityAlert.targeting(user)).distinct()
        if alert_status != "all":
            qs = qs.filter(status=choice(alert_status))
    severity = request.GET.get("severity")
    if severity:
        qs = qs.filter(severity=choice(severity))
    data = paginate(qs.order_by("-created_at"), request, lambda a: _alert_dict(a, user), per_page=20)
    data["unread_count"] = ActivityAlert.unread_count(user, site_ids)
    return ok(data)


def _targeted_alert(request, alert_id):
    alert = get_object_or_404(ActivityAlert, id=alert_id)
    if not request.user.can_access_site(alert.site_id):
        return None, site_denied()
    if not alert.targets(request.user):
        return None, err("Not authorized to access this alert", status_code=status.HTTP_403_FORBIDDEN)
    return alert, None


@api_view(["PUT"])
@permission_classes([IsAuthenticated])
def alert_read(request, alert_id):
    """PUT /api/activities/alerts/<id>/read/"""
    alert, denied = _targeted_alert(request, alert_id)
    if denied:
        return denied
    alert.mark_as_read(request.user)
    return ok(_alert_dict(alert, request.user), message="Alert marked as read.")


@api_view(["PUT"])
@permission_classes([IsAuthenticated])
def alert_acknowledge(request, alert_id):
    """PUT /api/activities/alerts/<id>/acknowledge/  Body: { [note] }"""
    alert, denied = _targeted_alert(request, alert_id)
    if denied:
        return denied
    alert.acknowledge(request.user, request.data.get("note", ""))
    return ok(_alert_dict(alert, request.user), message="Alert acknowledged.")


@api_view(["PUT"])
@permission_classes([IsAuthenticated])
def alert_dismiss(request, alert_id):
    """PUT /api/activities/alerts/<id>/dismiss/ (admin / site manager)"""
    denied = role_error(request.user, *MANAGER_ROLES)
    if denied:
        return denied
    alert = get_object_or_404(ActivityAlert, id=alert_id)
    if not request.user.can_access_site(alert.site_id):
        return site_denied()
    alert.dismiss()
    return ok(_alert_dict(alert, request.user), message="Alert dismissed.")


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def activity_stats(request):
    """GET /api/activities/stats/?time_range=today|week|month"""
    site_ids, denied = site_scope(request)
    if denied:
        return denied
    time_range = request.GET.get("time_range") or request.GET.get("timeRange") or "today"
    since = range_start(time_range)
    activities = Activity.objects.filter(site_id__in=site_ids, timestamp__gte=since)
    alerts = ActivityAlert.objects.filter(site_id__in=site_ids, created_at__gte=since)
    by_type = {row["type"]: row["count"] for row in activities.values("type").annotate(count=Count("id"))}
    by_severity = {row["severity"]: row["count"] for row in alerts.values("severity").annotate(count=Count("id"))}
    return ok({
        "time_range": time_range,
        "activities_by_type": by_type,
        "alerts_by_severity": by_severity,
        "total_activities": sum(by_type.values()),
        "total_alerts": sum(by_severity.values()),
        "unread_alerts": ActivityAlert.unread_count(request.user, site_ids),
    })


@api_view(["DELETE"])
@permission_classes([IsAuthenticated])
def alert_cleanup(request):
    """DELETE /api/activities/alerts/cleanup/?older_than_days=30 — purge dismissed alerts."""
    denied = role_error(request.user, ROLE_ADMIN)
    if denied:
        return denied
    site_ids, denied = site_scope(request)
    if denied:
        return denied
    days = max(0, as_int(request.GET.get("older_than_days", request.data.get("older_than_days")), 30))
    cutoff = timezone.now() - timedelta(days=days)
    deleted, _ = ActivityAlert.objects.filter(
        site_id__in=site_ids, status="DISMISSED", created_at__lt=cutoff
    ).delete()
    logger.info("Purged %d dismissed alert row(s) older than %d days", deleted, days)
    return ok({"deleted_count": deleted}, message="Cleanup complete.")


# =============================================================================
# 13. TIMELINE
# =============================================================================

TIMELINE_EVENT_TYPES = ("checkin", "checkout", "security", "incident")
SECURITY_ACTIVITY_TYPES = ("SECURITY_ALERT", "EMERGENCY_ACTIVATED", "EMERGENCY_DEACTIVATED")


def _visitor_event(v, kind):
    checkin = kind == "checkin"
    return {
        "id": f"{kind}-{v.id}",
        "type": kind,
        "title": "Visitor Check-in" if checkin else "Visitor Check-out",
        "description": f"{v.full_name} from {v.company} checked {'in' if checkin else 'out'}",
        "timestamp": v.check_in_time if checkin else v.check_out_time,
        "severity": "info",
        "visitor": {"id": str(v.id), "full_name": v.full_name, "company": v.company, "badge_number": v.badge_number},
        "access_point": v.access_point.name if v.access_point else None,
    }


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def timeline_events(request):
    """
    GET /api/timeline/events/?siteId=&time_range=today|week|month
        &event_types=checkin,checkout,security,incident&limit=100
    """
    site_ids, denied = site_scope(request, single=True)
    if denied:
        return denied
    site_id = site_ids[0]
    since = range_start(request.GET.get("time_range") or request.GET.get("timeRange") or "today")
    raw_types = request.GET.get("event_types") or request.GET.get("eventTypes") or ",".join(TIMELINE_EVENT_TYPES)
    wanted = {t.strip().lower() for t in raw_types.split(",") if t.strip()}
    limit = max(1, min(500, as_int(request.GET.get("limit"), 100)))

    events = []
    visitors = Visitor.objects.filter(site_id=site_id).select_related("access_point")
    if "checkin" in wanted:
        events += [_visitor_event(v, "checkin") for v in visitors.filter(check_in_time__gte=since)]
    if "checkout" in wanted:
        events += [_visitor_event(v, "checkout") for v in visitors.filter(check_out_time__gte=since)]
    if "incident" in wanted:
        for i in Incident.objects.filter(site_id=site_id, incident_date__gte=since):
            events.append({
                "id": f"incident-{i.id}",
                "type": "incident",
                "title": i.title,
                "description": i.description,
                "timestamp": i.incident_date,
                "severity": i.severity.lower(),
                "status": i.status,
            })
    if "security" in wanted:
        for a in Activity.objects.filter(site_id=site_id, type__in=SECURITY_ACTIVITY_TYPES, timestamp__gte=since):
            events.append({
                "id": f"security-{a.id}",
                "type": "security",
                "title": a.title,
                "description": a.description,
                "timestamp": a.timestamp,
                "severity": a.priority.lower(),
            })
        for alert in ActivityAlert.objects.filter(site_id=site_id, type="BANNED_VISITOR", created_at__gte=since):
            events.append({
                "id": f"security-{alert.id}",
                "type": "security",
                "title": alert.title,
                "description": alert.message,
                "timestamp": alert.created_at,
                "severity": "critical",
            })
    events.sort(key=lambda e: e["timestamp"], reverse=True)
    return ok({"events": events[:limit], "total": len(events)})


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def timeline_stats(request):
    """GET /api/timeline/stats/?siteId="""
    site_ids, denied = site_scope(request, single=True)
    if denied:
        return denied
    site_id = site_ids[0]
    today = start_of_today()
    week = timezone.now() - timedelta(days=7)
    visitors = Visitor.objects.filter(site_id=site_id)
    incidents = Incident.objects.filter(site_id=site_id)
    return ok({
        "today": {
            "check_ins": visitors.filter(check_in_time__gte=today).count(),
            "check_outs": visitors.filter(check_out_time__gte=today).count(),
            "incidents": incidents.filter(incident_date__gte=today).count(),
        },
        "week": {
            "check_ins": visitors.filter(check_in_time__gte=week).count(),
            "incidents": incidents.filter(incident_date__gte=week).count(),
        },
    })


# =============================================================================
# 14. REPORTS
# =============================================================================

def _top(queryset, field, limit=10):
    rows = (
        queryset.exclude(**{field: ""}).values(field)
        .annotate(count=Count("id")).order_by("-count")[:limit]
    )
    return [{"name": row[field], "count": row["count"]} for row in rows]


def _breakdown(queryset, field):
    return {row[field]: row["count"] for row in queryset.values(field).annotate(count=Count("id")).order_by()}


def _report_scope(request):
    denied = role_error(request.user, ROLE_SUPER_ADMIN, *MANAGER_ROLES)
    if denied:
        return None, None, None, denied
    site_ids, denied = site_scope(request)
    if denied:
        return None, None, None, denied
    start, end = report_range(request)
    return site_ids, start, end, None


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def report_visitor_summary(request):
    """GET /api/reports/visitor-summary/?start_date=&end_date=&siteId="""
    site_ids, start, end, denied = _report_scope(request)
    if denied:
        return denied
    visitors = Visitor.objects.filter(site_id__in=site_ids, check_in_time__range=(start, end))
    on_site = list(visitors.filter(status="CHECKED_IN"))
    overstayed = sum(1 for v in on_site if v.has_overstayed()) + visitors.filter(status="OVERSTAYED").count()
    completed = visitors.filter(status="CHECKED_OUT", check_out_time__isnull=False)
    hours = [(v.check_out_time - v.check_in_time).total_seconds() / 3600 for v in completed]
    by_hour = (
        visitors.annotate(hour=ExtractHour("check_in_time"))
        .values("hour").annotate(count=Count("id")).order_by("hour")
    )
    return ok({
        "period": {"start": start, "end": end},
        "total_visitors": visitors.count(),
        "currently_on_site": len(on_site),
        "checked_out": completed.count(),
        "overstayed": overstayed,
        "average_duration_hours": round(sum(hours) / len(hours), 2) if hours else 0,
        "top_companies": _top(visitors, "company"),
        "visitors_by_hour": [{"hour": row["hour"], "count": row["count"]} for row in by_hour],
    })


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def report_incident_summary(request):
    """GET /api/reports/incident-summary/?start_date=&end_date=&siteId="""
    site_ids, start, end, denied = _report_scope(request)
    if denied:
        return denied
    incidents = Incident.objects.filter(site_id__in=site_ids, incident_date__range=(start, end))
    resolved = incidents.filter(status__in=["RESOLVED", "CLOSED"])
    days = [
        (i.resolved_date - i.incident_date).total_seconds() / 86400
        for i in resolved.exclude(resolved_date__isnull=True)
    ]
    return ok({
        "period": {"start": start, "end": end},
        "total_incidents": incidents.count(),
        "resolved_incidents": resolved.count(),
        "open_incidents": incidents.exclude(status__in=["RESOLVED", "CLOSED"]).count(),
        "average_resolution_days": round(sum(days) / len(days), 1) if days else 0,
        "by_type": _breakdown(incidents, "incident_type"),
        "by_severity": _breakdown(incidents, "severity"),
        "by_status": _breakdown(incidents, "status"),
    })


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def report_security_summary(request):
    """GET /api/reports/security-summary/?start_date=&end_date=&siteId="""
    site_ids, start, end, denied = _report_scope(request)
    if denied:
        return denied
    bans = BannedVisitor.objects.filter(site_id__in=site_ids)
    period_bans = bans.filter(banned_date__range=(start, end))
    attempts = ActivityAlert.objects.filter(site_id__in=site_ids, created_at__range=(start, end)).filter(
        Q(type="BANNED_VISITOR") | Q(type="SYSTEM", severity="CRITICAL")
    )
    return ok({
        "period": {"start": start, "end": end},
        "total_banned": bans.filter(is_active=True).count(),
        "banned_this_period": period_bans.count(),
        "top_banned_companies": _top(bans.filter(is_active=True), "company"),
        "ban_reasons": _top(period_bans, "reason"),
        "banned_attempts": attempts.count(),
    })


EXPORT_COLUMNS = {
    "visitors": [
        ("Badge", "badge_number"), ("Name", "full_name"), ("Email", "email"), ("Phone", "phone"),
        ("Company", "company"), ("Purpose", "purpose"), ("Status", "status"),
        ("Check In", "check_in_time"), ("Check Out", "check_out_time"),
    ],
    "incidents": [
        ("Title", "title"), ("Type", "incident_type"), ("Severity", "severity"), ("Status", "status"),
        ("Incident Date", "incident_date"), ("Reported Date", "reported_date"),
        ("Resolved Date", "resolved_date"),
    ],
    "banned": [
        ("Name", "full_name"), ("Email", "email"), ("Company", "company"), ("Reason", "reason"),
        ("Banned Date", "banned_date"), ("Expiry Date", "expiry_date"), ("Active", "is_active"),
    ],
}


def _export_queryset(report_type, site_ids, start, end):
    if report_type == "visitors":
        return Visitor.objects.filter(site_id__in=site_ids, check_in_time__range=(start, end)).order_by("-check_in_time")
    if report_type == "incidents":
        return Incident.objects.filter(site_id__in=site_ids, incident_date__range=(start, end)).order_by("-incident_date")
    return BannedVisitor.objects.filter(site_id__in=site_ids, banned_date__range=(start, end)).order_by("-banned_date")


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def report_export(request):
    """
    GET /api/reports/export/?type=visitors|incidents|banned&format=json|csv&start_date=&end_date=
    CSV is streamed back as an attachment.
    """
    site_ids, start, end, denied = _report_scope(request)
    if denied:
        return denied
    report_type = (request.GET.get("type") or "visitors").lower()
    export_format = (request.GET.get("format") or "json").lower()
    if report_type not in EXPORT_COLUMNS:
        return err("Invalid report type")
    if export_format not in ("json", "csv"):
        return err("Invalid export format")

    columns = EXPORT_COLUMNS[report_type]
    rows = [
        {label: getattr(obj, field) for label, field in columns}
        for obj in _export_queryset(report_type, site_ids, start, end)
    ]
    log_action(request.user, "EXPORT", report_type, "", f"Exported {len(rows)} {report_type} rows as {export_format}", request)

    if export_format == "csv":
        response = HttpResponse(content_type="text/csv")
        filename = f"{report_type}-report-{timezone.localdate():%Y-%m-%d}.csv"
        response["Content-Disposition"] = f'attachment; filename="{filename}"'
        writer = csv.writer(response)
        writer.writerow([label for label, _ in columns])
        for row in rows:
            writer.writerow(["" if row[label] is None else row[label] for label, _ in columns])
        return response
    return ok({"type": report_type, "period": {"start": start, "end": end}, "count": len(rows), "rows": rows})


# =============================================================================
# 15. PRE-REGISTRATION
# =============================================================================

def _pending_preregistration(token, check_expiry=True):
    """Look up a pending invitation by token. Returns (visitor, error_response)."""
    visitor = Visitor.objects.select_related("site", "access_point").filter(
        pre_registration_token=token, is_pre_registered=True, status="PENDING",
    ).first() if token else None
    if visitor is None:
        return None, err("Invalid or expired pre-registration link", status_code=status.HTTP_404_NOT_FOUND)
    ttl = timedelta(hours=settings.PREREGISTRATION_LINK_TTL_HOURS)
    if check_expiry and visitor.pre_registration_date and visitor.pre_registration_date + ttl < timezone.now():
        return None, err("Pre-registration link has expired")
    return visitor, None


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def prereg_send_invitation(request):
    """
    POST /api/preregistration/send-invitation/
    Body: { email, full_name, company, purpose, access_point, [expected_duration, contact_person] }
    """
    user = request.user
    data = request.data
    errors = field_errors(data, ["email", "full_name", "company", "purpose", "access_point"])
    if not errors.get("email") and not valid_email(data["email"].strip()):
        errors["email"] = "Enter a valid email address."
    if errors:
        return err("Validation failed.", details=errors)

    access_point_id = parse_uuid(data["access_point"])
    access_point = AccessPoint.objects.select_related("site").filter(
        pk=access_point_id, is_active=True
    ).first() if access_point_id else None
    if access_point is None:
        return err("Invalid or inactive access point")
    site = access_point.site
    if not user.can_access_site(site):
        return site_denied()
    if not site.get_setting("allow_pre_registration"):
        return err("Pre-registration is disabled for this site")

    attempt = {
        "full_name": data["full_name"].strip(),
        "email": data["email"].strip().lower(),
        "company": data["company"].strip(),
    }
    ban = BannedVisitor.check_visitor(attempt["full_name"], attempt["email"], attempt["company"], site=site)
    if ban:
        _raise_banned_alarm(user, site, access_point, attempt, ban)
        return _banned_response(ban)

    token = gen_token()
    visitor = Visitor.objects.create(
        full_name=attempt["full_name"],
        email=attempt["email"],
        company=attempt["company"],
        purpose=data["purpose"],
        contact_person=data.get("contact_person") or user.full_name,
        site=site,
        access_point=access_point,
        status="PENDING",
        expected_duration=max(1, as_int(data.get("expected_duration"), 4)),
        is_pre_registered=True,
        pre_registration_date=timezone.now(),
        pre_registration_token=token,
        host_name=user.full_name,
        host_email=user.email,
        host_phone=user.phone,
    )
    url = f"{settings.CLIENT_URL.rstrip('/')}/preregistration/{token}"
    email_sent = bool(safely(notifications.send_preregistration_invitation, visitor, site, url, user))
    logger.info("Pre-registration invitation for %s at %s (email sent: %s)", visitor.email, site.name, email_sent)
    return ok({
        "visitor": _visitor_dict(visitor),
        "url": url,
        "email_sent": email_sent,
    }, message="Invitation created.", status_code=status.HTTP_201_CREATED)


@api_view(["GET"])
@permission_classes([AllowAny])
@authentication_classes([])
def prereg_detail(request, token):
    """GET /api/preregistration/<token>/ — public landing data for the invitee."""
    visitor, invalid = _pending_preregistration(token)
    if invalid:
        return invalid
    return ok({
        "visitor": {
            "full_name": visitor.full_name,
            "email": visitor.email,
            "company": visitor.company,
            "purpose": visitor.purpose,
            "expected_duration": visitor.expected_duration,
            "host_name": visitor.host_name,
        },
        "site": {
            "name": visitor.site.name,
            "address": visitor.site.address,
            "city": visitor.site.city,
            "require_ppe": visitor.site.get_setting("require_ppe"),
            "require_safety_induction": visitor.site.get_setting("require_safety_induction"),
            "terms_and_conditions": visitor.site.get_setting("terms_and_conditions"),
        },
        "access_point": _site_ref(visitor.access_point),
        "terms": [_terms_dict(t, detail=True) for t in TermsAndWaivers.active_for_site([visitor.site_id])],
        "expires_at": visitor.pre_registration_date + timedelta(hours=settings.PREREGISTRATION_LINK_TTL_HOURS),
    })


@api_view(["POST"])
@permission_classes([AllowAny])
@authentication_classes([])
def prereg_complete(request, token):
    """
    POST /api/preregistration/<token>/complete/
    Body: { phone, emergency_contact: {name, phone, relationship}, [notes, host_*] }
    """
    visitor, invalid = _pending_preregistration(token)
    if invalid:
        return invalid
    data = request.data
    contact = data.get("emergency_contact") if isinstance(data.get("emergency_contact"), dict) else {}
    fields = {
        "phone": data.get("phone"),
        "emergency_contact_name": contact.get("name", data.get("emergency_contact_name")),
        "emergency_contact_phone": contact.get("phone", data.get("emergency_contact_phone")),
        "emergency_contact_relationship": contact.get("relationship", data.get("emergency_contact_relationship")),
    }
    errors = {f: "This field is required." for f, value in fields.items() if is_blank(value)}
    if errors:
        return err("Validation failed.", details=errors)

    for f, value in fields.items():
        setattr(visitor, f, str(value).strip())
    for f in ("host_department", "documents"):
        if f in data:
            setattr(visitor, f, data[f])
    if not is_blank(data.get("notes")):
        visitor.notes = f"{visitor.notes}\n{data['notes']}".strip()
    visitor.qr_code = visitor.build_qr_payload()
    visitor.save()

    qr_data_url = safely(notifications.build_qr_data_url, visitor.qr_code)
    email_sent = bool(qr_data_url and safely(
        notifications.send_preregistration_confirmation, visitor, visitor.site, qr_data_url,
    ))
    return ok({
        "visitor": _visitor_dict(visitor),
        "qr_code": qr_data_url,
        "email_sent": email_sent,
    }, message="Pre-registration completed.")


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def prereg_checkin(request, token):
    """POST /api/preregistration/<token>/checkin/ — arrival of an invited visitor."""
    user = request.user
    denied = role_error(user, ROLE_SUPER_ADMIN, *FRONT_DESK_ROLES)
    if denied:
        return denied
    visitor, invalid = _pending_preregistration(token, check_expiry=False)
    if invalid:
        return invalid
    site = visitor.site
    if not user.can_access_site(site):
        return site_denied()
    ban = BannedVisitor.check_visitor(visitor.full_name, visitor.email, visitor.company, site=site)
    if ban:
        attempt = {"full_name": visitor.full_name, "email": visitor.email, "company": visitor.company}
        _raise_banned_alarm(user, site, visitor.access_point, attempt, ban)
        return _banned_response(ban)

    now = timezone.now()
    visitor.status = "CHECKED_IN"
    visitor.check_in_time = now
    visitor.checked_in_by = user
    if as_bool(request.data.get("ppe_verified", False)):
        visitor.ppe_verified = True
    if as_bool(request.data.get("safety_induction_completed", False)):
        visitor.safety_induction_completed = True
        visitor.safety_induction_date = now
    visitor.qr_code = visitor.build_qr_payload()
    visitor.save()

    _after_check_in(visitor, user)
    return ok({
        "visitor": _visitor_dict(visitor, detail=True),
        "qr_code": visitor.qr_code,
    }, message="Pre-registered visitor checked in.")


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def prereg_pending(request):
    """GET /api/preregistration/pending/list/?siteId=&page=&limit="""
    denied = role_error(request.user, ROLE_SUPER_ADMIN, *FRONT_DESK_ROLES)
    if denied:
        return denied
    site_ids, denied = site_scope(request)
    if denied:
        return denied
    qs = Visitor.objects.filter(
        site_id__in=site_ids, is_pre_registered=True, status="PENDING"
    ).select_related("site", "access_point").order_by("-pre_registration_date")
    return ok(paginate(qs, request, _visitor_dict, per_page=20))


# =============================================================================
# 16. STRIPE BILLING
# =============================================================================

STRIPE_STATUS_MAP = {
    "active": "ACTIVE",
    "trialing": "ACTIVE",
    "past_due": "PAST_DUE",
    "unpaid": "PAST_DUE",
    "canceled": "CANCELLED",
    "incomplete_expired": "CANCELLED",
}


def _stripe_ready():
    if not settings.STRIPE_SECRET_KEY:
        return err("Stripe is not configured", status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    stripe.api_key = settings.STRIPE_SECRET_KEY
    return None


def _stripe_value(obj, *keys):
    """Nested item lookup on Stripe objects/dicts; None when any key is missing."""
    for key in keys:
        if obj is None:
            return None
        try:
            obj = obj[key]
        except (KeyError, TypeError, IndexError):
            return None
    return obj


def _from_ts(value):
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)


def _apply_stripe_subscription(site, subscription, status_override=None):
    site.stripe_subscription_id = _stripe_value(subscription, "id") or site.stripe_subscription_id
    site.subscription_status = status_override or STRIPE_STATUS_MAP.get(
        _stripe_value(subscription, "status"), "INACTIVE"
    )
    start = _stripe_value(subscription, "current_period_start")
    end = _stripe_value(subscription, "current_period_end")
    if start:
        site.current_period_start = _from_ts(start)
    if end:
        site.current_period_end = _from_ts(end)
    site.save(update_fields=[
        "stripe_subscription_id", "subscription_status",
        "current_period_start", "current_period_end", "updated_at",
    ])
    logger.info("Site %s billing status -> %s", site.name, site.subscription_status)
    return site


def _site_for_stripe_customer(customer_id, by_email=False):
    if not customer_id:
        return None
    site = Site.objects.filter(stripe_customer_id=customer_id).first()
    if site or not by_email:
        return site
    email = _stripe_value(stripe.Customer.retrieve(customer_id), "email")
    admin = User.objects.filter(email=(email or "").lower(), role=ROLE_ADMIN).first() if email else None
    site = admin.owned_sites().order_by("created_at").first() if admin else None
    if site:
        site.stripe_customer_id = customer_id
        site.save(update_fields=["stripe_customer_id", "updated_at"])
    return site


def _billing_site(request):
    """Admin-only single site (body siteId or the admin's first site)."""
    denied = role_error(request.user, ROLE_ADMIN)
    if denied:
        return None, denied
    not_ready = _stripe_ready()
    if not_ready:
        return None, not_ready
    site_ids, denied = site_scope(
        request, single=True, site_id=request.data.get("siteId") or request.data.get("site_id"),
    )
    if denied:
        return None, denied
    return Site.objects.get(pk=site_ids[0]), None


def _billing_dict(site):
    return {
        "site_id": str(site.id),
        "stripe_customer_id": site.stripe_customer_id,
        "stripe_subscription_id": site.stripe_subscription_id,
        "subscription_status": site.subscription_status,
        "subscription_plan": site.subscription_plan,
        "current_period_start": site.current_period_start,
        "current_period_end": site.current_period_end,
    }


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def stripe_create_customer(request):
    """POST /api/stripe/create-customer/  Body: { [siteId] }"""
    site, denied = _billing_site(request)
    if denied:
        return denied
    if site.stripe_customer_id:
        return ok(_billing_dict(site), message="Customer already exists.")
    try:
        customer = stripe.Customer.create(
            email=request.user.email,
            name=request.user.full_name,
            metadata={"site_id": str(site.id), "admin_id": str(request.user.id)},
        )
    except stripe.error.StripeError as exc:
        logger.error("Stripe customer creation failed: %s", exc)
        return err(f"Stripe error: {exc}")
    site.stripe_customer_id = _stripe_value(customer, "id")
    site.save(update_fields=["stripe_customer_id", "updated_at"])
    return ok(_billing_dict(site), message="Customer created.", status_code=status.HTTP_201_CREATED)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def stripe_create_subscription(request):
    """POST /api/stripe/create-subscription/  Body: { priceId, [siteId, plan] }"""
    site, denied = _billing_site(request)
    if denied:
        return denied
    price_id = request.data.get("priceId") or request.data.get("price_id")
    if not price_id:
        return err("Field 'priceId' is required.")
    if not site.stripe_customer_id:
        return err("Create a Stripe customer first")
    try:
        subscription = stripe.Subscription.create(
            customer=site.stripe_customer_id,
            items=[{"price": price_id}],
            payment_behavior="default_incomplete",
            expand=["latest_invoice.payment_intent"],
            metadata={"site_id": str(site.id)},
        )
    except stripe.error.StripeError as exc:
        logger.error("Stripe subscription creation failed: %s", exc)
        return err(f"Stripe error: {exc}")
    plan = choice(request.data.get("plan"))
    if plan in dict(Site.SUBSCRIPTION_PLANS):
        site.subscription_plan = plan
        site.save(update_fields=["subscription_plan", "updated_at"])
    _apply_stripe_subscription(site, subscription)
    return ok({
        **_billing_dict(site),
        "client_secret": _stripe_value(subscription, "latest_invoice", "payment_intent", "client_secret"),
    }, message="Subscription created.", status_code=status.HTTP_201_CREATED)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def stripe_site_subscription(request, site_id):
    """GET /api/stripe/subscription/<site_id>/"""
    denied = role_error(request.user, ROLE_ADMIN)
    if denied:
        return denied
    not_ready = _stripe_ready()
    if not_ready:
        return not_ready
    site = get_object_or_404(Site, id=site_id)
    if not request.user.can_access_site(site):
        return site_denied()
    if site.stripe_subscription_id:
        try:
            _apply_stripe_subscription(site, stripe.Subscription.retrieve(site.stripe_subscription_id))
        except stripe.error.StripeError as exc:
            logger.error("Stripe subscription lookup failed: %s", exc)
            return err(f"Stripe error: {exc}")
    return ok(_billing_dict(site))


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def stripe_cancel_subscription(request):
    """POST /api/stripe/cancel-subscription/  Body: { [siteId] } — cancels at period end."""
    site, denied = _billing_site(request)
    if denied:
        return denied
    if not site.stripe_subscription_id:
        return err("No active subscription found")
    try:
        subscription = stripe.Subscription.modify(site.stripe_subscription_id, cancel_at_period_end=True)
    except stripe.error.StripeError as exc:
        logger.error("Stripe cancellation failed: %s", exc)
        return err(f"Stripe error: {exc}")
    _apply_stripe_subscription(site, subscription)
    log_action(request.user, "SUBSCRIPTION", "Site", site.id, "Stripe subscription set to cancel at period end",
               request, site=site)
    return ok({
        **_billing_dict(site),
        "cancel_at_period_end": bool(_stripe_value(subscription, "cancel_at_period_end")),
    }, message="Subscription will be cancelled at the end of the billing period.")


@api_view(["POST"])
@permission_classes([AllowAny])
@authentication_classes([])
def stripe_webhook(request):
    """POST /api/stripe/webhook/ — signed Stripe events."""
    not_ready = _stripe_ready()
    if not_ready:
        return not_ready
    if not settings.STRIPE_WEBHOOK_SECRET:
        return err("Stripe webhook secret not configured", status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    try:
        event = stripe.Webhook.construct_event(
            request.body, request.META.get("HTTP_STRIPE_SIGNATURE", ""), settings.STRIPE_WEBHOOK_SECRET,
        )
    except ValueError:
        return err("Invalid payload")
    except stripe.error.SignatureVerificationError:
        logger.warning("Stripe webhook with invalid signature from %s", client_ip(request))
        return err("Invalid signature")

    event_type = _stripe_value(event, "type")
    obj = _stripe_value(event, "data", "object")
    customer_id = _stripe_value(obj, "customer")
    if event_type == "customer.subscription.created":
        try:
            site = _site_for_stripe_customer(customer_id, by_email=True)
        except stripe.error.StripeError as exc:
            logger.error("Stripe customer lookup failed: %s", exc)
            site = None
        if site:
            _apply_stripe_subscription(site, obj)
    elif event_type == "customer.subscription.updated":
        site = _site_for_stripe_customer(customer_id)
        if site:
            _apply_stripe_subscription(site, obj)
    elif event_type == "customer.subscription.deleted":
        site = _site_for_stripe_customer(customer_id)
        if site:
            _apply_stripe_subscription(site, obj, status_override="CANCELLED")
    elif event_type == "invoice.payment_failed":
        site = _site_for_stripe_customer(customer_id)
        if site:
            site.subscription_status = "PAST_DUE"
            site.save(update_fields=["subscription_status", "updated_at"])
            logger.warning("Payment failed for site %s", site.name)
    else:
        logger.info("Unhandled Stripe event %s", event_type)
        return ok({"received": True})
    if site is None:
        logger.info("Stripe event %s matched no site (customer %s)", event_type, customer_id)
    return ok({"received": True})


# =============================================================================
# 17. TERMS & WAIVERS
# =============================================================================

TERMS_FIELDS = ["title", "content", "is_active", "is_required", "custom_fields"]


def _apply_terms_fields(terms, data):
    for f in TERMS_FIELDS:
        if f in data:
            value = data[f]
            setattr(terms, f, as_bool(value) if f in ("is_active", "is_required") else value)
    if "type" in data or "terms_type" in data:
        terms.terms_type = choice(data.get("type") or data.get("terms_type"))
    for f in ("effective_date", "expiry_date"):
        if f in data:
            setattr(terms, f, parse_moment(data[f]))
    if terms.effective_date is None:
        terms.effective_date = timezone.now()


def _bump_version(version):
    major, _, minor = str(version or "1.0").partition(".")
    try:
        return f"{int(major)}.{int(minor or 0) + 1}"
    except ValueError:
        return "1.0"


@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
def terms_list_create(request):
    """
    GET  /api/terms-and-waivers/?siteId=&type=
    POST /api/terms-and-waivers/  Body: { title, content, type, [siteId, is_required, version, ...] }
    """
    user = request.user
    if request.method == "GET":
        site_ids, denied = site_scope(request)
        if denied:
            return denied
        qs = TermsAndWaivers.active_for_site(site_ids)
        terms_type = request.GET.get("type")
        if terms_type:
            qs = qs.filter(terms_type=choice(terms_type))
        return ok([_terms_dict(t) for t in qs])

    denied = role_error(user, ROLE_SUPER_ADMIN, *MANAGER_ROLES)
    if denied:
        return denied
    missing = require_fields(request.data, ["title", "content"])
    if missing:
        return missing
    site_ids, denied = site_scope(
        request, single=True, site_id=request.data.get("siteId") or request.data.get("site_id"),
    )
    if denied:
        return denied
    terms = TermsAndWaivers(site_id=site_ids[0], created_by=user, last_modified_by=user)
    _apply_terms_fields(terms, request.data)
    if terms.terms_type not in dict(TermsAndWaivers.TYPE_CHOICES):
        return err("Invalid terms type.")
    if request.data.get("version"):
        terms.version = str(request.data["version"])
    terms.save()
    log_action(user, "CREATE", "TermsAndWaivers", terms.id, f"Terms '{terms.title}' created", request, site=terms.site)
    return ok(_terms_dict(terms, detail=True), message="Terms created.", status_code=status.HTTP_201_CREATED)


@api_view(["GET", "PUT", "PATCH"])
@permission_classes([IsAuthenticated])
def terms_detail(request, terms_id):
    """GET/PUT /api/terms-and-waivers/<id>/ — content changes bump the version."""
    terms = get_object_or_404(TermsAndWaivers.objects.select_related("created_by", "last_modified_by"), id=terms_id)
    if not request.user.can_access_site(terms.site_id):
        return site_denied()
    if request.method == "GET":
        return ok(_terms_dict(terms, detail=True))

    denied = role_error(request.user, ROLE_SUPER_ADMIN, *MANAGER_ROLES)
    if denied:
        return denied
    old_content = terms.content
    _apply_terms_fields(terms, request.data)
    if terms.terms_type not in dict(TermsAndWaivers.TYPE_CHOICES):
        return err("Invalid terms type.")
    if request.data.get("version"):
        terms.version = str(request.data["version"])
    elif terms.content != old_content:
        terms.version = _bump_version(terms.version)
    terms.last_modified_by = request.user
    terms.save()
    log_action(request.user, "UPDATE", "TermsAndWaivers", terms.id, f"Terms '{terms.title}' updated to v{terms.version}",
               request, site=terms.site)
    return ok(_terms_dict(terms, detail=True), message="Terms updated.")


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def terms_accept(request, terms_id):
    """POST /api/terms-and-waivers/<id>/accept/  Body: { visitor_id, [signature] }"""
    terms = get_object_or_404(TermsAndWaivers, id=terms_id)
    if not request.user.can_access_site(terms.site_id):
        return site_denied()
    visitor_id = parse_uuid(request.data.get("visitor_id") or request.data.get("visitorId"))
    if visitor_id is None:
        return err("Field 'visitor_id' is required.")
    visitor = get_object_or_404(Visitor, id=visitor_id, site_id=terms.site_id)
    if terms.has_visitor_accepted(visitor):
        return err("Visitor has already accepted these terms")
    acceptance = terms.add_acceptance(
        visitor,
        ip_address=client_ip(request),
        user_agent=request.META.get("HTTP_USER_AGENT", ""),
        signature=request.data.get("signature", ""),
    )
    return ok({
        "terms_id": str(terms.id),
        "visitor_id": str(visitor.id),
        "version": acceptance.version,
        "accepted_at": acceptance.accepted_at,
    }, message="Terms accepted.", status_code=status.HTTP_201_CREATED)


# =============================================================================
# 18. SYSTEM
# =============================================================================

@api_view(["GET"])
@permission_classes([AllowAny])
@authentication_classes([])
def health_check(request):
    """GET /api/health/"""
    return ok({"status": "OK", "timestamp": timezone.now()})

"""
=============================================================================
ACSOGUARD - MULTI-TENANT VISITOR & SITE SECURITY - DJANGO MODELS
=============================================================================

ARCHITECTURE OVERVIEW:
  Core Modules:
    1.  Users, Roles & Tenancy
    2.  Sites & Access Points
    3.  Visitors (check-in / check-out, badges, pre-registration)
    4.  Banned Visitors
    5.  Incidents
    6.  Activities & Alerts
    7.  Subscriptions
    8.  Companies
    9.  Terms & Waivers
    10. Audit Trail

Tenancy:
  A tenant is an ADMIN account plus the sites it owns. Staff users point at
  their tenant admin through `User.admin` and at their site through
  `User.assigned_site`.
=============================================================================
"""

import calendar
import json
import secrets
import time
import uuid
from datetime import timedelta

from django.contrib.auth.models import AbstractUser
from django.contrib.auth.models import UserManager as DjangoUserManager
from django.db import models
from django.db.models import Q
from django.utils import timezone


ROLE_SUPER_ADMIN = "SUPER_ADMIN"
ROLE_ADMIN = "ADMIN"
ROLE_SITE_MANAGER = "SITE_MANAGER"
ROLE_SECURITY_GUARD = "SECURITY_GUARD"
ROLE_RECEPTIONIST = "RECEPTIONIST"

STAFF_ROLES = (ROLE_SITE_MANAGER, ROLE_SECURITY_GUARD, ROLE_RECEPTIONIST)
ALL_ROLES = (ROLE_SUPER_ADMIN, ROLE_ADMIN) + STAFF_ROLES


def add_months(moment, months):
    """Shift a datetime by whole calendar months, clamping the day."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


# ---------------------------------------------------------------------------
# UTILITY MIXINS
# ---------------------------------------------------------------------------

class TimeStampedModel(models.Model):
    """Abstract base with created/updated timestamps."""
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class UUIDModel(models.Model):
    """Abstract base using UUID primary key for external-safe IDs."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Meta:
        abstract = True


# ---------------------------------------------------------------------------
# 1. USERS, ROLES & TENANCY
# ---------------------------------------------------------------------------

class UserManager(DjangoUserManager):
    """Users log in by email; username mirrors it unless given explicitly."""

    def create_user(self, username=None, email=None, password=None, **extra_fields):
        email = self.normalize_email(email).strip().lower()
        return super().create_user(username or email, email, password, **extra_fields)

    def create_superuser(self, username=None, email=None, password=None, **extra_fields):
        email = self.normalize_email(email).strip().lower()
        extra_fields.setdefault("role", ROLE_SUPER_ADMIN)
        return super().create_superuser(username or email, email, password, **extra_fields)


class User(AbstractUser):
    """
    Platform user. SUPER_ADMIN runs the platform, ADMIN owns a tenant,
    the remaining roles are site staff.
    """
    ROLE_CHOICES = [
        (ROLE_SUPER_ADMIN, "Super Admin"),
        (ROLE_ADMIN, "Admin"),
        (ROLE_SITE_MANAGER, "Site Manager"),
        (ROLE_SECURITY_GUARD, "Security Guard"),
        (ROLE_RECEPTIONIST, "Receptionist"),
    ]
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    full_name = models.CharField(max_length=200)
    email = models.EmailField(unique=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_SECURITY_GUARD)
    phone = models.CharField(max_length=20, blank=True)
    address = models.TextField(blank=True)
    assigned_site = models.ForeignKey(
        "Site", on_delete=models.SET_NULL, null=True, blank=True, related_name="staff"
    )
    managed_sites = models.ManyToManyField("Site", blank=True, related_name="managers")
    # Tenant owner for staff accounts
    admin = models.ForeignKey(
        "self", on_delete=models.SET_NULL, null=True, blank=True, related_name="team"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    class Meta:
        ordering = ["full_name"]

    def __str__(self):
        return f"{self.full_name or self.email} ({self.role})"

    def save(self, *args, **kwargs):
        self.email = (self.email or "").strip().lower()
        if not self.username:
            self.username = self.email
        super().save(*args, **kwargs)

    def has_role(self, *roles):
        return (self.role or "").upper() in {r.upper() for r in roles}

    @property
    def is_super_admin(self):
        return self.has_role(ROLE_SUPER_ADMIN)

    @property
    def is_tenant_admin(self):
        return self.has_role(ROLE_ADMIN)

    def tenant_admin(self):
        """The ADMIN account whose subscription covers this user."""
        if self.is_tenant_admin:
            return self
        return self.admin

    def owned_sites(self):
        return Site.objects.filter(Q(admin=self) | Q(managers=self)).distinct()

    def can_access_site(self, site):
        site_id = getattr(site, "pk", site)
        if site_id is None:
            return False
        if self.is_super_admin:
            return True
        if self.is_tenant_admin:
            return self.owned_sites().filter(pk=site_id).exists()
        return self.assigned_site_id is not None and str(self.assigned_site_id) == str(site_id)


# ---------------------------------------------------------------------------
# 2. SITES & ACCESS POINTS
# ---------------------------------------------------------------------------

DEFAULT_TERMS = (
    "By entering this construction site, you agree to follow all safety "
    "protocols and regulations."
)


def default_site_settings():
    return {
        "allow_pre_registration": True,
        "require_ppe": True,
        "require_safety_induction": True,
        "max_visitors_per_day": 100,
        "visitor_badge_expiry_hours": 8,
        "emergency_contacts": [],
        "terms_and_conditions": DEFAULT_TERMS,
    }


class Site(UUIDModel, TimeStampedModel):
    """A physical site owned by a tenant admin."""
    SUBSCRIPTION_STATUS = [
        ("ACTIVE", "Active"),
        ("INACTIVE", "Inactive"),
        ("CANCELLED", "Cancelled"),
        ("PAST_DUE", "Past Due"),
    ]
    SUBSCRIPTION_PLANS = [
        ("BASIC", "Basic"),
        ("PREMIUM", "Premium"),
        ("ENTERPRISE", "Enterprise"),
    ]
    DEFAULT_ACCESS_POINTS = [
        ("Main Gate", "MAIN_GATE", "Primary entrance"),
        ("Side Entrance", "SIDE_ENTRANCE", "Secondary entrance"),
        ("Loading Dock", "LOADING_DOCK", "Deliveries and contractors"),
    ]

    name = models.CharField(max_length=200)
    address = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=100, blank=True)
    state = models.CharField(max_length=100, blank=True)
    zip_code = models.CharField(max_length=20, blank=True)
    country = models.CharField(max_length=100, default="USA")
    admin = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="sites"
    )
    is_active = models.BooleanField(default=True)

    # Stripe-backed billing state
    subscription_status = models.CharField(max_length=20, choices=SUBSCRIPTION_STATUS, default="INACTIVE")
    stripe_customer_id = models.CharField(max_length=100, blank=True)
    stripe_subscription_id = models.CharField(max_length=100, blank=True)
    current_period_start = models.DateTimeField(null=True, blank=True)
    current_period_end = models.DateTimeField(null=True, blank=True)
    subscription_plan = models.CharField(max_length=20, choices=SUBSCRIPTION_PLANS, default="BASIC")

    settings = models.JSONField(default=default_site_settings, blank=True)
    contact_phone = models.CharField(max_length=20, blank=True)
    contact_email = models.EmailField(blank=True)
    emergency_phone = models.CharField(max_length=20, blank=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    def get_setting(self, key):
        return (self.settings or {}).get(key, default_site_settings().get(key))

    def create_default_access_points(self):
        return [
            AccessPoint.objects.create(site=self, name=name, type=ap_type, description=description)
            for name, ap_type, description in self.DEFAULT_ACCESS_POINTS
        ]

    def staff_members(self, roles=STAFF_ROLES):
        return User.objects.filter(assigned_site=self, role__in=roles, is_active=True)


def default_operating_hours():
    return {
        "start": "06:00",
        "end": "18:00",
        "days_of_week": ["monday", "tuesday", "wednesday", "thursday", "friday"],
    }


class AccessPoint(UUIDModel, TimeStampedModel):
    """A gate or entrance through which visitors are processed."""
    TYPE_CHOICES = [
        ("MAIN_GATE", "Main Gate"),
        ("SIDE_ENTRANCE", "Side Entrance"),
        ("LOADING_DOCK", "Loading Dock"),
        ("EMERGENCY_EXIT", "Emergency Exit"),
        ("RESTRICTED_AREA", "Restricted Area"),
    ]
    ACCESS_LEVELS = [
        ("PUBLIC", "Public"),
        ("RESTRICTED", "Restricted"),
        ("VIP_ONLY", "VIP Only"),
        ("STAFF_ONLY", "Staff Only"),
    ]

    site = models.ForeignKey(Site, on_delete=models.CASCADE, related_name="access_points")
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default="MAIN_GATE")
    location = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)
    access_level = models.CharField(max_length=20, choices=ACCESS_LEVELS, default="PUBLIC")
    required_ppe = models.JSONField(default=list, blank=True)
    operating_hours = models.JSONField(default=default_operating_hours, blank=True)
    assigned_staff = models.ManyToManyField(User, blank=True, related_name="access_points")
    capacity = models.PositiveIntegerField(default=50)
    current_occupancy = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.site.name})"

    def update_occupancy(self):
        self.current_occupancy = self.visitors.filter(status="CHECKED_IN").count()
        self.save(update_fields=["current_occupancy", "updated_at"])
        return self.current_occupancy


# ---------------------------------------------------------------------------
# 3. VISITORS
# ---------------------------------------------------------------------------

def generate_badge_number():
    """'V' + last 6 digits of the epoch-ms clock + 3 random digits."""
    millis = str(int(time.time() * 1000))[-6:]
    return f"V{millis}{secrets.randbelow(1000):03d}"


class Visitor(UUIDModel, TimeStampedModel):
    """A single visit to a site, from pre-registration through check-out."""
    STATUS_CHOICES = [
        ("PENDING", "Pending"),
        ("CHECKED_IN", "Checked In"),
        ("CHECKED_OUT", "Checked Out"),
        ("OVERSTAYED", "Overstayed"),
    ]
    SPECIAL_ACCESS = [
        ("NONE", "None"),
        ("VIP", "VIP"),
        ("AUDITOR", "Auditor"),
        ("INSPECTOR", "Inspector"),
        ("CONTRACTOR", "Contractor"),
    ]

    full_name = models.CharField(max_length=200)
    email = models.EmailField()
    phone = models.CharField(max_length=30, blank=True)
    company = models.CharField(max_length=200, blank=True)
    purpose = models.CharField(max_length=500, blank=True)
    contact_person = models.CharField(max_length=200, blank=True)
    site = models.ForeignKey(Site, on_delete=models.CASCADE, related_name="visitors")
    access_point = models.ForeignKey(
        AccessPoint, on_delete=models.SET_NULL, null=True, blank=True, related_name="visitors"
    )
    check_in_time = models.DateTimeField(null=True, blank=True)
    check_out_time = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="PENDING")
    badge_number = models.CharField(max_length=20, unique=True, blank=True)
    qr_code = models.TextField(blank=True)

    # Safety
    ppe_verified = models.BooleanField(default=False)
    safety_induction_completed = models.BooleanField(default=False)
    safety_induction_date = models.DateTimeField(null=True, blank=True)
    emergency_contact_name = models.CharField(max_length=200, blank=True)
    emergency_contact_phone = models.CharField(max_length=30, blank=True)
    emergency_contact_relationship = models.CharField(max_length=100, blank=True)

    # Elevated access
    special_access = models.CharField(max_length=20, choices=SPECIAL_ACCESS, default="NONE")
    special_access_expiry = models.DateTimeField(null=True, blank=True)
    authorized_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="authorized_visitors"
    )

    # Host
    host_name = models.CharField(max_length=200, blank=True)
    host_email = models.EmailField(blank=True)
    host_phone = models.CharField(max_length=30, blank=True)
    host_department = models.CharField(max_length=100, blank=True)

    expected_duration = models.PositiveIntegerField(default=4, help_text="Hours")
    documents = models.JSONField(default=list, blank=True)

    # Pre-registration
    is_pre_registered = models.BooleanField(default=False)
    pre_registration_date = models.DateTimeField(null=True, blank=True)
    pre_registration_token = models.CharField(max_length=100, blank=True, db_index=True)

    notes = models.TextField(blank=True)
    security_notes = models.TextField(blank=True)
    checked_in_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="checked_in_visitors"
    )
    checked_out_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="checked_out_visitors"
    )
    overstay_alerted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-check_in_time", "-created_at"]
        indexes = [
            models.Index(fields=["site", "status"], name="guard_visit_site_id_4c1d2e_idx"),
            models.Index(fields=["site", "check_in_time"], name="guard_visit_site_id_9a7b3f_idx"),
        ]

    def __str__(self):
        return f"{self.full_name} [{self.badge_number}] - {self.status}"

    def save(self, *args, **kwargs):
        self.email = (self.email or "").strip().lower()
        if not self.badge_number:
            badge = generate_badge_number()
            while Visitor.objects.filter(badge_number=badge).exists():
                badge = generate_badge_number()
            self.badge_number = badge
        super().save(*args, **kwargs)

    def build_qr_payload(self):
        return json.dumps({
            "visitorId": str(self.id),
            "badgeNumber": self.badge_number,
            "siteId": str(self.site_id),
            "checkInTime": self.check_in_time.isoformat() if self.check_in_time else None,
        })

    def has_overstayed(self, now=None):
        if self.status == "CHECKED_OUT" or not self.check_in_time:
            return False
        now = now or timezone.now()
        return now > self.check_in_time + timedelta(hours=self.expected_duration)

    def duration_minutes(self):
        if not self.check_in_time:
            return 0
        end = self.check_out_time or timezone.now()
        return max(0, int((end - self.check_in_time).total_seconds() // 60))

    def duration_display(self):
        minutes = self.duration_minutes()
        return f"{minutes // 60}h {minutes % 60}m"


# ---------------------------------------------------------------------------
# 4. BANNED VISITORS
# ---------------------------------------------------------------------------

class BannedVisitor(UUIDModel, TimeStampedModel):
    """A person refused entry to a site."""
    APPEAL_STATUS = [
        ("NONE", "None"),
        ("PENDING", "Pending"),
        ("APPROVED", "Approved"),
        ("REJECTED", "Rejected"),
    ]

    full_name = models.CharField(max_length=200)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    company = models.CharField(max_length=200, blank=True)
    reason = models.TextField()
    description = models.TextField(blank=True)
    banned_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, related_name="bans_issued"
    )
    site = models.ForeignKey(Site, on_delete=models.CASCADE, related_name="banned_visitors")
    banned_date = models.DateTimeField(default=timezone.now)
    expiry_date = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    reviewed_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="bans_reviewed"
    )
    review_date = models.DateTimeField(null=True, blank=True)
    review_notes = models.TextField(blank=True)
    incident_report = models.TextField(blank=True)
    related_incidents = models.ManyToManyField("Incident", blank=True, related_name="bans")
    evidence = models.JSONField(default=list, blank=True)
    appeal_status = models.CharField(max_length=20, choices=APPEAL_STATUS, default="NONE")

    class Meta:
        ordering = ["-banned_date"]
        indexes = [models.Index(fields=["site", "is_active"], name="guard_banne_site_id_7d1a2b_idx")]

    def __str__(self):
        return f"{self.full_name} banned at {self.site.name}"

    def is_expired(self):
        return bool(self.expiry_date and self.expiry_date <= timezone.now())

    @classmethod
    def check_visitor(cls, full_name="", email="", company="", site=None):
        """
        First active, unexpired ban whose stored name or company contains the
        given value, or whose email matches exactly (all case-insensitive).
        Blank inputs never match.
        """
        match = Q()
        if full_name and full_name.strip():
            match |= Q(full_name__icontains=full_name.strip())
        if email and email.strip():
            match |= Q(email__iexact=email.strip())
        if company and company.strip():
            match |= Q(company__icontains=company.strip())
        if not match:
            return None
        qs = cls.objects.filter(match, is_active=True).filter(
            Q(expiry_date__isnull=True) | Q(expiry_date__gt=timezone.now())
        )
        if site is not None:
            qs = qs.filter(site=site)
        return qs.select_related("banned_by", "site").order_by("-banned_date").first()


# ---------------------------------------------------------------------------
# 5. INCIDENTS
# ---------------------------------------------------------------------------

class Incident(UUIDModel, TimeStampedModel):
    """Safety and security incident reports filed by site staff."""
    TYPE_CHOICES = [
        ("SAFETY", "Safety"),
        ("SECURITY", "Security"),
        ("PROPERTY_DAMAGE", "Property Damage"),
        ("INJURY", "Injury"),
        ("ENVIRONMENTAL", "Environmental"),
        ("OTHER", "Other"),
    ]
    SEVERITY_CHOICES = [
        ("LOW", "Low"),
        ("MEDIUM", "Medium"),
        ("HIGH", "High"),
        ("CRITICAL", "Critical"),
    ]
    STATUS_CHOICES = [
        ("REPORTED", "Reported"),
        ("INVESTIGATING", "Investigating"),
        ("RESOLVED", "Resolved"),
        ("CLOSED", "Closed"),
    ]
    # Days an unresolved incident may stay open, per severity
    OVERDUE_THRESHOLD_DAYS = {"CRITICAL": 1, "HIGH": 3, "MEDIUM": 7, "LOW": 14}

    title = models.CharField(max_length=200)
    description = models.TextField()
    incident_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    severity = models.CharField(max_length=20, choices=SEVERITY_CHOICES, default="MEDIUM")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="REPORTED")
    site = models.ForeignKey(Site, on_delete=models.CASCADE, related_name="incidents")

    # Location
    access_point = models.ForeignKey(
        AccessPoint, on_delete=models.SET_NULL, null=True, blank=True, related_name="incidents"
    )
    building = models.CharField(max_length=100, blank=True)
    floor = models.CharField(max_length=50, blank=True)
    specific_location = models.CharField(max_length=255, blank=True)
    latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)

    reported_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, related_name="reported_incidents"
    )
    reported_date = models.DateTimeField(default=timezone.now)
    incident_date = models.DateTimeField()
    people_involved = models.JSONField(default=list, blank=True)
    witnesses = models.JSONField(default=list, blank=True)

    # Investigation
    assigned_to = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="assigned_incidents"
    )
    investigation_start = models.DateTimeField(null=True, blank=True)
    investigation_end = models.DateTimeField(null=True, blank=True)
    findings = models.TextField(blank=True)
    recommendations = models.TextField(blank=True)
    corrective_actions = models.JSONField(default=list, blank=True)
    follow_up_actions = models.JSONField(default=list, blank=True)
    evidence = models.JSONField(default=list, blank=True)

    # Authorities
    reported_to_authorities = models.BooleanField(default=False)
    authority_contact = models.CharField(max_length=200, blank=True)
    report_number = models.CharField(max_length=100, blank=True)
    report_date = models.DateTimeField(null=True, blank=True)

    # Resolution
    resolved_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="resolved_incidents"
    )
    resolved_date = models.DateTimeField(null=True, blank=True)
    resolution_notes = models.TextField(blank=True)
    lessons_learned = models.TextField(blank=True)

    tags = models.JSONField(default=list, blank=True)
    related_incidents = models.ManyToManyField("self", blank=True)

    class Meta:
        ordering = ["-incident_date"]
        indexes = [
            models.Index(fields=["site", "status"], name="guard_incid_site_id_5e8f10_idx"),
            models.Index(fields=["site", "incident_date"], name="guard_incid_site_id_b2c4d6_idx"),
        ]

    def __str__(self):
        return f"[{self.severity}] {self.title}"

    @property
    def days_since_incident(self):
        return (timezone.now() - self.incident_date).days

    def is_overdue(self):
        if self.status in ("RESOLVED", "CLOSED"):
            return False
        threshold = self.OVERDUE_THRESHOLD_DAYS.get(self.severity, 7)
        return self.days_since_incident > threshold


# ---------------------------------------------------------------------------
# 6. ACTIVITIES & ALERTS
# ---------------------------------------------------------------------------

class Activity(UUIDModel, TimeStampedModel):
    """Audit record of something that happened on a site."""
    TYPE_CHOICES = [
        ("CHECKIN", "Check-in"),
        ("CHECKOUT", "Check-out"),
        ("INCIDENT", "Incident"),
        ("SECURITY_ALERT", "Security Alert"),
        ("ACCESS_POINT_CREATED", "Access Point Created"),
        ("ACCESS_POINT_UPDATED", "Access Point Updated"),
        ("EMERGENCY_ACTIVATED", "Emergency Activated"),
        ("EMERGENCY_DEACTIVATED", "Emergency Deactivated"),
        ("EMERGENCY_NOTIFICATION", "Emergency Notification"),
    ]
    PRIORITY_CHOICES = [
        ("LOW", "Low"),
        ("MEDIUM", "Medium"),
        ("HIGH", "High"),
        ("CRITICAL", "Critical"),
    ]
    STATUS_CHOICES = [
        ("ACTIVE", "Active"),
        ("ACKNOWLEDGED", "Acknowledged"),
        ("RESOLVED", "Resolved"),
    ]

    type = models.CharField(max_length=30, choices=TYPE_CHOICES)
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    visitor = models.ForeignKey(
        Visitor, on_delete=models.SET_NULL, null=True, blank=True, related_name="activities"
    )
    site = models.ForeignKey(Site, on_delete=models.CASCADE, related_name="activities")
    access_point = models.ForeignKey(
        AccessPoint, on_delete=models.SET_NULL, null=True, blank=True, related_name="activities"
    )
    incident = models.ForeignKey(
        Incident, on_delete=models.SET_NULL, null=True, blank=True, related_name="activities"
    )
    performed_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="activities"
    )
    metadata = models.JSONField(default=dict, blank=True)
    priority = models.CharField(max_length=20, choices=PRIORITY_CHOICES, default="MEDIUM")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="ACTIVE")
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["-timestamp"]
        verbose_name_plural = "activities"
        indexes = [
            models.Index(fields=["site", "timestamp"], name="guard_activ_site_id_3f6e9a_idx"),
            models.Index(fields=["type", "timestamp"], name="guard_activ_type_8c2d1e_idx"),
        ]

    def __str__(self):
        return f"{self.type}: {self.title}"

    @classmethod
    def create_check_in(cls, visitor, user, access_point=None):
        access_point = access_point or visitor.access_point
        location = access_point.name if access_point else "the site"
        return cls.objects.create(
            type="CHECKIN",
            title="Visitor Check-in",
            description=f"{visitor.full_name} from {visitor.company} checked in at {location}",
            visitor=visitor,
            site=visitor.site,
            access_point=access_point,
            performed_by=user,
            priority="MEDIUM",
            metadata={
                "badge_number": visitor.badge_number,
                "purpose": visitor.purpose,
                "contact_person": visitor.contact_person,
            },
        )

    @classmethod
    def create_check_out(cls, visitor, user):
        minutes = visitor.duration_minutes()
        return cls.objects.create(
            type="CHECKOUT",
            title="Visitor Check-out",
            description=(
                f"{visitor.full_name} from {visitor.company} checked out after "
                f"{minutes // 60}h {minutes % 60}m"
            ),
            visitor=visitor,
            site=visitor.site,
            access_point=visitor.access_point,
            performed_by=user,
            priority="LOW",
            metadata={"badge_number": visitor.badge_number, "duration_minutes": minutes},
        )

    @classmethod
    def create_access_point(cls, access_point, user, updated=False):
        verb = "Updated" if updated else "Created"
        return cls.objects.create(
            type="ACCESS_POINT_UPDATED" if updated else "ACCESS_POINT_CREATED",
            title=f"Access Point {verb}",
            description=f"Access point '{access_point.name}' was {verb.lower()}",
            site=access_point.site,
            access_point=access_point,
            performed_by=user,
            priority="LOW",
            metadata={"type": access_point.type, "access_level": access_point.access_level},
        )


def default_alert_expiry():
    return timezone.now() + timedelta(days=7)


class ActivityAlert(UUIDModel, TimeStampedModel):
    """A notification aimed at roles and/or specific users."""
    TYPE_CHOICES = [
        ("VISITOR_CHECKIN", "Visitor Check-in"),
        ("VISITOR_CHECKOUT", "Visitor Check-out"),
        ("OVERSTAY", "Overstay"),
        ("BANNED_VISITOR", "Banned Visitor"),
        ("SECURITY_BREACH", "Security Breach"),
        ("SYSTEM", "System"),
    ]
    SEVERITY_CHOICES = [
        ("INFO", "Info"),
        ("WARNING", "Warning"),
        ("ERROR", "Error"),
        ("CRITICAL", "Critical"),
    ]
    STATUS_CHOICES = [
        ("UNREAD", "Unread"),
        ("READ", "Read"),
        ("ACKNOWLEDGED", "Acknowledged"),
        ("DISMISSED", "Dismissed"),
    ]
    VISITOR_ALERT_ROLES = [ROLE_ADMIN, ROLE_SITE_MANAGER, ROLE_SECURITY_GUARD]

    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    title = models.CharField(max_length=200)
    message = models.TextField()
    visitor = models.ForeignKey(
        Visitor, on_delete=models.SET_NULL, null=True, blank=True, related_name="alerts"
    )
    site = models.ForeignKey(Site, on_delete=models.CASCADE, related_name="alerts")
    access_point = models.ForeignKey(
        AccessPoint, on_delete=models.SET_NULL, null=True, blank=True, related_name="alerts"
    )
    severity = models.CharField(max_length=20, choices=SEVERITY_CHOICES, default="INFO")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="UNREAD")
    target_roles = models.JSONField(default=list, blank=True)
    target_users = models.ManyToManyField(User, blank=True, related_name="targeted_alerts")
    metadata = models.JSONField(default=dict, blank=True)
    expires_at = models.DateTimeField(default=default_alert_expiry)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["site", "status"], name="guard_activ_site_id_6a0b4c_idx"),
            models.Index(fields=["site", "created_at"], name="guard_activ_site_id_d5e7f9_idx"),
        ]

    def __str__(self):
        return f"[{self.severity}] {self.title}"

    @staticmethod
    def targeting(user):
        """Q matching alerts aimed at the user's role or at the user directly."""
        return Q(target_roles__icontains=f'"{(user.role or "").upper()}"') | Q(target_users=user)

    def targets(self, user):
        roles = {r.upper() for r in (self.target_roles or [])}
        if (user.role or "").upper() in roles:
            return True
        return self.target_users.filter(pk=user.pk).exists()

    def is_read_by(self, user):
        return self.receipts.filter(user=user, kind="READ").exists()

    def mark_as_read(self, user):
        AlertReceipt.objects.get_or_create(alert=self, user=user, kind="READ")
        if self.status == "UNREAD":
            self.status = "READ"
            self.save(update_fields=["status", "updated_at"])

    def acknowledge(self, user, note=""):
        AlertReceipt.objects.get_or_create(
            alert=self, user=user, kind="ACKNOWLEDGED", defaults={"note": note}
        )
        self.status = "ACKNOWLEDGED"
        self.save(update_fields=["status", "updated_at"])

    def dismiss(self):
        self.status = "DISMISSED"
        self.save(update_fields=["status", "updated_at"])

    @classmethod
    def unread_for(cls, user, site_ids):
        return (
            cls.objects.filter(
                site_id__in=site_ids, status__in=["UNREAD", "READ"], expires_at__gt=timezone.now()
            )
            .filter(cls.targeting(user))
            .exclude(pk__in=AlertReceipt.objects.filter(user=user, kind="READ").values("alert_id"))
            .distinct()
        )

    @classmethod
    def unread_count(cls, user, site_ids):
        return cls.unread_for(user, site_ids).count()

    @classmethod
    def create_visitor_alert(cls, alert_type, visitor, user=None, access_point=None):
        access_point = access_point or visitor.access_point
        location = access_point.name if access_point else "the site"
        templates = {
            "VISITOR_CHECKIN": (
                "Visitor Check-in",
                f"{visitor.full_name} from {visitor.company} has checked in at {location}",
                "INFO",
            ),
            "VISITOR_CHECKOUT": (
                "Visitor Check-out",
                f"{visitor.full_name} from {visitor.company} has checked out",
                "INFO",
            ),
            "OVERSTAY": (
                "Visitor Overstay Alert",
                f"{visitor.full_name} has exceeded their expected visit duration "
                f"of {visitor.expected_duration} hours",
                "WARNING",
            ),
            "BANNED_VISITOR": (
                "Banned Visitor Alert",
                f"Banned visitor {visitor.full_name} attempted to check in at {location}",
                "CRITICAL",
            ),
        }
        title, message, severity = templates[alert_type]
        return cls.objects.create(
            type=alert_type,
            title=title,
            message=message,
            visitor=None if visitor._state.adding else visitor,
            site=visitor.site,
            access_point=access_point,
            severity=severity,
            target_roles=list(cls.VISITOR_ALERT_ROLES),
            metadata={
                "badge_number": visitor.badge_number,
                "company": visitor.company,
                "performed_by": str(user.pk) if user else None,
            },
        )

    @classmethod
    def create_system_alert(cls, title, message, site, severity="INFO", target_roles=None, metadata=None):
        return cls.objects.create(
            type="SYSTEM",
            title=title,
            message=message,
            site=site,
            severity=severity,
            target_roles=list(target_roles or [ROLE_ADMIN]),
            metadata=metadata or {},
        )


class AlertReceipt(models.Model):
    """Per-user read / acknowledgement record for an alert."""
    KIND_CHOICES = [("READ", "Read"), ("ACKNOWLEDGED", "Acknowledged")]

    alert = models.ForeignKey(ActivityAlert, on_delete=models.CASCADE, related_name="receipts")
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="alert_receipts")
    kind = models.CharField(max_length=20, choices=KIND_CHOICES)
    note = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ("alert", "user", "kind")

    def __str__(self):
        return f"{self.user} {self.kind.lower()} {self.alert_id}"


# ---------------------------------------------------------------------------
# 7. SUBSCRIPTIONS
# ---------------------------------------------------------------------------

class Subscription(UUIDModel, TimeStampedModel):
    """Seat-limited plan held by a tenant admin."""
    PLAN_CHOICES = [
        ("STARTER", "Starter"),
        ("PROFESSIONAL", "Professional"),
        ("ENTERPRISE", "Enterprise"),
    ]
    STATUS_CHOICES = [
        ("ACTIVE", "Active"),
        ("CANCELED", "Canceled"),
        ("EXPIRED", "Expired"),
    ]
    PLAN_MEMBER_LIMITS = {"STARTER": 5, "PROFESSIONAL": 25, "ENTERPRISE": 1000}

    admin = models.OneToOneField(User, on_delete=models.CASCADE, related_name="subscription")
    plan = models.CharField(max_length=20, choices=PLAN_CHOICES, default="STARTER")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="ACTIVE")
    start_date = models.DateTimeField(default=timezone.now)
    end_date = models.DateTimeField()
    member_limit = models.PositiveIntegerField(default=5)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.admin} - {self.plan} ({self.status})"

    def is_current(self):
        return self.status == "ACTIVE" and self.end_date > timezone.now()

    def current_users(self):
        return User.objects.filter(admin=self.admin).exclude(
            role__in=[ROLE_ADMIN, ROLE_SUPER_ADMIN]
        ).count()

    def activate(self, plan, months):
        now = timezone.now()
        self.plan = plan
        self.status = "ACTIVE"
        self.start_date = now
        self.end_date = add_months(now, months)
        self.member_limit = self.PLAN_MEMBER_LIMITS[plan]
        return self

    @classmethod
    def activate_for(cls, admin, plan, months):
        """Create or renew the admin's subscription."""
        subscription = cls.objects.filter(admin=admin).first() or cls(admin=admin)
        subscription.activate(plan, months)
        subscription.save()
        return subscription


# ---------------------------------------------------------------------------
# 8. COMPANIES
# ---------------------------------------------------------------------------

class Company(UUIDModel, TimeStampedModel):
    """Visitor employer / contractor directory entry."""
    name = models.CharField(max_length=200, unique=True)
    contact_email = models.EmailField()
    contact_phone = models.CharField(max_length=30)
    street = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=100, blank=True)
    state = models.CharField(max_length=100, blank=True)
    zip_code = models.CharField(max_length=20, blank=True)
    country = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    visitor_count = models.PositiveIntegerField(default=0)
    last_visit = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="companies_created"
    )
    updated_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="companies_updated"
    )

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "companies"

    def __str__(self):
        return self.name

    def update_visitor_count(self):
        visits = Visitor.objects.filter(
            company__iexact=self.name, status__in=["CHECKED_IN", "CHECKED_OUT"]
        )
        self.visitor_count = visits.count()
        latest = visits.exclude(check_in_time__isnull=True).order_by("-check_in_time").first()
        self.last_visit = latest.check_in_time if latest else None
        self.save(update_fields=["visitor_count", "last_visit", "updated_at"])
        return self.visitor_count

    @classmethod
    def stats(cls):
        totals = cls.objects.aggregate(
            total_companies=models.Count("id"),
            active_companies=models.Count("id", filter=Q(is_active=True)),
            total_visitors=models.Sum("visitor_count"),
        )
        totals["total_visitors"] = totals["total_visitors"] or 0
        return totals


# ---------------------------------------------------------------------------
# 9. TERMS & WAIVERS
# ---------------------------------------------------------------------------

class TermsAndWaivers(UUIDModel, TimeStampedModel):
    """Versioned documents visitors must accept before entry."""
    TYPE_CHOICES = [
        ("TERMS_OF_ACCESS", "Terms of Access"),
        ("LIABILITY_WAIVER", "Liability Waiver"),
        ("SAFETY_AGREEMENT", "Safety Agreement"),
        ("PRIVACY_POLICY", "Privacy Policy"),
        ("CUSTOM", "Custom"),
    ]

    site = models.ForeignKey(Site, on_delete=models.CASCADE, related_name="terms")
    title = models.CharField(max_length=200)
    terms_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default="TERMS_OF_ACCESS")
    content = models.TextField()
    version = models.CharField(max_length=20, default="1.0")
    is_active = models.BooleanField(default=True)
    is_required = models.BooleanField(default=True)
    effective_date = models.DateTimeField(default=timezone.now)
    expiry_date = models.DateTimeField(null=True, blank=True)
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, related_name="terms_created"
    )
    last_modified_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="terms_modified"
    )
    custom_fields = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ["-effective_date"]
        verbose_name_plural = "terms and waivers"

    def __str__(self):
        return f"{self.title} v{self.version}"

    def has_visitor_accepted(self, visitor):
        return self.acceptances.filter(visitor=visitor, version=self.version).exists()

    def add_acceptance(self, visitor, ip_address=None, user_agent="", signature=""):
        return TermsAcceptance.objects.create(
            terms=self,
            visitor=visitor,
            ip_address=ip_address,
            user_agent=user_agent,
            signature=signature,
            version=self.version,
        )

    @classmethod
    def active_for_site(cls, site_ids):
        now = timezone.now()
        return cls.objects.filter(
            site_id__in=site_ids, is_active=True, effective_date__lte=now
        ).filter(Q(expiry_date__isnull=True) | Q(expiry_date__gt=now))


class TermsAcceptance(models.Model):
    terms = models.ForeignKey(TermsAndWaivers, on_delete=models.CASCADE, related_name="acceptances")
    visitor = models.ForeignKey(Visitor, on_delete=models.CASCADE, related_name="terms_acceptances")
    accepted_at = models.DateTimeField(auto_now_add=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    signature = models.TextField(blank=True)
    version = models.CharField(max_length=20)

    class Meta:
        ordering = ["-accepted_at"]

    def __str__(self):
        return f"{self.visitor.full_name} accepted {self.terms.title} v{self.version}"


# ---------------------------------------------------------------------------
# 10. AUDIT TRAIL
# ---------------------------------------------------------------------------

class AuditLog(UUIDModel, TimeStampedModel):
    """
    Immutable log of account and tenant administration actions.
    Site activity lives in Activity; this table covers who changed what.
    """
    ACTION_TYPES = [
        ("CREATE", "Created"),
        ("UPDATE", "Updated"),
        ("DELETE", "Deleted"),
        ("LOGIN", "Login"),
        ("LOGOUT", "Logout"),
        ("ACTIVATE", "Activated"),
        ("DEACTIVATE", "Deactivated"),
        ("PASSWORD_RESET", "Password Reset"),
        ("SUBSCRIPTION", "Subscription Changed"),
        ("EXPORT", "Data Exported"),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True)
    action = models.CharField(max_length=30, choices=ACTION_TYPES)
    model_name = models.CharField(max_length=100, help_text="Django model name")
    object_id = models.CharField(max_length=100, blank=True)
    description = models.TextField()
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    site = models.ForeignKey(Site, on_delete=models.SET_NULL, null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["model_name", "object_id"], name="guard_audit_model_n_1b9c3d_idx")]

    def __str__(self):
        return f"{self.action} by {self.user} on {self.model_name}:{self.object_id}"

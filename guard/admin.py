"""
=============================================================================
ACSOGUARD — admin.py
=============================================================================
Django Admin for every guard model.
  - list_display / list_filter / search_fields per model
  - CSV export action everywhere
  - Colour-coded status badges
  - Read-only audit trail
=============================================================================
"""

import csv
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.html import format_html
from django.utils import timezone
from django.http import HttpResponse

from .models import (
    User, Site, AccessPoint, Visitor, BannedVisitor, Incident,
    Activity, ActivityAlert, AlertReceipt, Subscription, Company,
    TermsAndWaivers, TermsAcceptance, AuditLog,
)


# =============================================================================
# UTILITY: CSV EXPORT ACTION
# =============================================================================

def export_as_csv(modeladmin, request, queryset):
    """Export selected rows as CSV."""
    meta = modeladmin.model._meta
    field_names = [field.name for field in meta.fields]

    response = HttpResponse(content_type="text/csv")
    response["Content-Disposition"] = f"attachment; filename={meta.model_name}_export.csv"

    writer = csv.writer(response)
    writer.writerow(field_names)
    for obj in queryset:
        writer.writerow([getattr(obj, field) for field in field_names])
    return response

export_as_csv.short_description = "Export selected records as CSV"


# =============================================================================
# UTILITY: STATUS BADGE HELPERS
# =============================================================================

STATUS_COLORS = {
    # Visitor
    "PENDING":      "#f59e0b",
    "CHECKED_IN":   "#10b981",
    "CHECKED_OUT":  "#6b7280",
    "OVERSTAYED":   "#ef4444",
    # Incident
    "REPORTED":     "#f59e0b",
    "INVESTIGATING": "#3b82f6",
    "RESOLVED":     "#10b981",
    "CLOSED":       "#6b7280",
    # Severity
    "INFO":         "#3b82f6",
    "LOW":          "#10b981",
    "WARNING":      "#f59e0b",
    "MEDIUM":       "#f59e0b",
    "ERROR":        "#ef4444",
    "HIGH":         "#ef4444",
    "CRITICAL":     "#7c3aed",
    # Alerts
    "UNREAD":       "#ef4444",
    "READ":         "#3b82f6",
    "ACKNOWLEDGED": "#10b981",
    "DISMISSED":    "#9ca3af",
    # Subscription / billing
    "ACTIVE":       "#10b981",
    "INACTIVE":     "#9ca3af",
    "PAST_DUE":     "#f97316",
    "CANCELLED":    "#9ca3af",
    "CANCELED":     "#9ca3af",
    "EXPIRED":      "#9ca3af",
}


def colored_status(status):
    color = STATUS_COLORS.get(status, "#6b7280")
    return format_html(
        '<span style="background:{};color:#fff;padding:2px 8px;border-radius:4px;'
        'font-size:11px;font-weight:600;">{}</span>',
        color, status,
    )


# =============================================================================
# 1. USERS
# =============================================================================

@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ("full_name", "email", "phone", "role", "assigned_site", "admin", "is_active")
    list_filter = ("role", "is_active", "assigned_site")
    search_fields = ("full_name", "email", "phone", "username")
    readonly_fields = ("created_at", "updated_at", "last_login", "date_joined")
    ordering = ("full_name",)
    filter_horizontal = ("managed_sites", "groups", "user_permissions")
    actions = [export_as_csv, "activate_users", "deactivate_users"]

    fieldsets = BaseUserAdmin.fieldsets + (
        ("AcsoGuard Profile", {
            "fields": ("full_name", "role", "phone", "address",
                       "assigned_site", "managed_sites", "admin")
        }),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ("AcsoGuard Profile", {
            "fields": ("email", "full_name", "role", "assigned_site")
        }),
    )

    @admin.action(description="Activate selected users")
    def activate_users(self, request, queryset):
        updated = queryset.update(is_active=True)
        self.message_user(request, f"{updated} user(s) activated.")

    @admin.action(description="Deactivate selected users")
    def deactivate_users(self, request, queryset):
        updated = queryset.exclude(pk=request.user.pk).update(is_active=False)
        self.message_user(request, f"{updated} user(s) deactivated.")


# =============================================================================
# 2. SITES & ACCESS POINTS
# =============================================================================

class AccessPointInline(admin.TabularInline):
    model = AccessPoint
    extra = 0
    fields = ("name", "type", "access_level", "capacity", "current_occupancy", "is_active")
    readonly_fields = ("current_occupancy",)
    show_change_link = True


@admin.register(Site)
class SiteAdmin(admin.ModelAdmin):
    list_display = ("name", "city", "country", "admin", "subscription_badge",
                    "subscription_plan", "is_active", "created_at")
    list_filter = ("is_active", "subscription_status", "subscription_plan", "country")
    search_fields = ("name", "address", "city", "contact_email", "admin__email")
    readonly_fields = ("id", "created_at", "updated_at")
    inlines = [AccessPointInline]
    actions = [export_as_csv]
    fieldsets = (
        ("Identity", {
            "fields": ("id", "name", "admin", "is_active")
        }),
        ("Location", {
            "fields": ("address", "city", "state", "zip_code", "country")
        }),
        ("Contact", {
            "fields": ("contact_phone", "contact_email", "emergency_phone")
        }),
        ("Billing", {
            "fields": ("subscription_status", "subscription_plan", "stripe_customer_id",
                       "stripe_subscription_id", "current_period_start", "current_period_end")
        }),
        ("Settings", {
            "classes": ("collapse",),
            "fields": ("settings",)
        }),
        ("Timestamps", {
            "classes": ("collapse",),
            "fields": ("created_at", "updated_at")
        }),
    )

    def subscription_badge(self, obj):
        return colored_status(obj.subscription_status)
    subscription_badge.short_description = "Subscription"


@admin.register(AccessPoint)
class AccessPointAdmin(admin.ModelAdmin):
    list_display = ("name", "site", "type", "access_level", "capacity", "current_occupancy", "is_active")
    list_filter = ("type", "access_level", "is_active", "site")
    search_fields = ("name", "location", "site__name")
    readonly_fields = ("id", "created_at", "updated_at", "current_occupancy")
    filter_horizontal = ("assigned_staff",)
    actions = [export_as_csv, "recount_occupancy"]

    @admin.action(description="Recount occupancy")
    def recount_occupancy(self, request, queryset):
        for access_point in queryset:
            access_point.update_occupancy()
        self.message_user(request, f"{queryset.count()} access point(s) recounted.")


# =============================================================================
# 3. VISITORS
# =============================================================================

@admin.register(Visitor)
class VisitorAdmin(admin.ModelAdmin):
    list_display = ("full_name", "company", "badge_number", "site", "access_point",
                    "status_badge", "check_in_time", "check_out_time", "is_pre_registered")
    list_filter = ("status", "is_pre_registered", "special_access", "site")
    search_fields = ("full_name", "email", "phone", "company", "badge_number")
    readonly_fields = ("id", "badge_number", "qr_code", "created_at", "updated_at",
                       "pre_registration_token", "overstay_alerted_at")
    date_hierarchy = "check_in_time"
    actions = [export_as_csv, "force_checkout"]

    fieldsets = (
        ("Personal Info", {
            "fields": ("full_name", "email", "phone", "company", "purpose", "contact_person")
        }),
        ("Visit", {
            "fields": ("site", "access_point", "status", "badge_number", "qr_code",
                       "check_in_time", "check_out_time", "expected_duration",
                       "checked_in_by", "checked_out_by", "overstay_alerted_at")
        }),
        ("Safety", {
            "fields": ("ppe_verified", "safety_induction_completed", "safety_induction_date",
                       "emergency_contact_name", "emergency_contact_phone",
                       "emergency_contact_relationship")
        }),
        ("Host & Access", {
            "classes": ("collapse",),
            "fields": ("host_name", "host_email", "host_phone", "host_department",
                       "special_access", "special_access_expiry", "authorized_by", "documents")
        }),
        ("Pre-registration", {
            "classes": ("collapse",),
            "fields": ("is_pre_registered", "pre_registration_date", "pre_registration_token")
        }),
        ("Notes", {
            "fields": ("notes", "security_notes")
        }),
        ("Timestamps", {
            "classes": ("collapse",),
            "fields": ("id", "created_at", "updated_at")
        }),
    )

    def status_badge(self, obj):
        return colored_status(obj.status)
    status_badge.short_description = "Status"

    @admin.action(description="Check out selected visitors")
    def force_checkout(self, request, queryset):
        on_site = queryset.filter(status="CHECKED_IN")
        access_points = {v.access_point for v in on_site if v.access_point}
        updated = on_site.update(status="CHECKED_OUT", check_out_time=timezone.now(), checked_out_by=request.user)
        for access_point in access_points:
            access_point.update_occupancy()
        self.message_user(request, f"{updated} visitor(s) checked out.")


@admin.register(BannedVisitor)
class BannedVisitorAdmin(admin.ModelAdmin):
    list_display = ("full_name", "email", "company", "site", "banned_by",
                    "banned_date", "expiry_date", "is_active", "appeal_status")
    list_filter = ("is_active", "appeal_status", "site")
    search_fields = ("full_name", "email", "company", "reason")
    readonly_fields = ("id", "created_at", "updated_at", "review_date")
    filter_horizontal = ("related_incidents",)
    actions = [export_as_csv, "lift_bans"]

    @admin.action(description="Lift selected bans")
    def lift_bans(self, request, queryset):
        updated = queryset.filter(is_active=True).update(
            is_active=False, reviewed_by=request.user, review_date=timezone.now()
        )
        self.message_user(request, f"{updated} ban(s) lifted.")


# =============================================================================
# 4. INCIDENTS
# =============================================================================

@admin.register(Incident)
class IncidentAdmin(admin.ModelAdmin):
    list_display = ("title", "incident_type", "severity_badge", "status_badge",
                    "site", "reported_by", "assigned_to", "incident_date")
    list_filter = ("status", "severity", "incident_type", "site")
    search_fields = ("title", "description", "report_number")
    readonly_fields = ("id", "created_at", "updated_at", "reported_date")
    date_hierarchy = "incident_date"
    filter_horizontal = ("related_incidents",)
    actions = [export_as_csv, "close_incidents"]

    fieldsets = (
        ("Incident", {
            "fields": ("title", "description", "incident_type", "severity", "status",
                       "site", "incident_date", "reported_by", "reported_date")
        }),
        ("Location", {
            "fields": ("access_point", "building", "floor", "specific_location", "latitude", "longitude")
        }),
        ("Investigation", {
            "classes": ("collapse",),
            "fields": ("assigned_to", "investigation_start", "investigation_end", "findings",
                       "recommendations", "corrective_actions", "follow_up_actions",
                       "people_involved", "witnesses", "evidence")
        }),
        ("Authorities", {
            "classes": ("collapse",),
            "fields": ("reported_to_authorities", "authority_contact", "report_number", "report_date")
        }),
        ("Resolution", {
            "fields": ("resolved_by", "resolved_date", "resolution_notes", "lessons_learned",
                       "tags", "related_incidents")
        }),
    )

    def severity_badge(self, obj):
        return colored_status(obj.severity)
    severity_badge.short_description = "Severity"

    def status_badge(self, obj):
        return colored_status(obj.status)
    status_badge.short_description = "Status"

    @admin.action(description="Close selected incidents")
    def close_incidents(self, request, queryset):
        updated = queryset.filter(status="RESOLVED").update(status="CLOSED")
        self.message_user(request, f"{updated} incident(s) closed.")


# =============================================================================
# 5. ACTIVITIES & ALERTS
# =============================================================================

@admin.register(Activity)
class ActivityAdmin(admin.ModelAdmin):
    list_display = ("title", "type", "site", "priority_badge", "status", "performed_by", "timestamp")
    list_filter = ("type", "priority", "status", "site")
    search_fields = ("title", "description")
    readonly_fields = ("id", "created_at", "updated_at")
    date_hierarchy = "timestamp"
    actions = [export_as_csv]

    def priority_badge(self, obj):
        return colored_status(obj.priority)
    priority_badge.short_description = "Priority"


class AlertReceiptInline(admin.TabularInline):
    model = AlertReceipt
    extra = 0
    fields = ("user", "kind", "note", "created_at")
    readonly_fields = ("created_at",)


@admin.register(ActivityAlert)
class ActivityAlertAdmin(admin.ModelAdmin):
    list_display = ("title", "type", "site", "severity_badge", "status_badge", "created_at", "expires_at")
    list_filter = ("type", "severity", "status", "site")
    search_fields = ("title", "message")
    readonly_fields = ("id", "created_at", "updated_at")
    filter_horizontal = ("target_users",)
    inlines = [AlertReceiptInline]
    actions = [export_as_csv, "dismiss_alerts"]

    def severity_badge(self, obj):
        return colored_status(obj.severity)
    severity_badge.short_description = "Severity"

    def status_badge(self, obj):
        return colored_status(obj.status)
    status_badge.short_description = "Status"

    @admin.action(description="Dismiss selected alerts")
    def dismiss_alerts(self, request, queryset):
        updated = queryset.exclude(status="DISMISSED").update(status="DISMISSED")
        self.message_user(request, f"{updated} alert(s) dismissed.")


# =============================================================================
# 6. SUBSCRIPTIONS & COMPANIES
# =============================================================================

@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = ("admin", "plan", "status_badge", "member_limit", "start_date", "end_date")
    list_filter = ("plan", "status")
    search_fields = ("admin__email", "admin__full_name")
    readonly_fields = ("id", "created_at", "updated_at")
    actions = [export_as_csv]

    def status_badge(self, obj):
        return colored_status(obj.status)
    status_badge.short_description = "Status"


@admin.register(Company)
class CompanyAdmin(admin.ModelAdmin):
    list_display = ("name", "contact_email", "contact_phone", "visitor_count", "last_visit", "is_active")
    list_filter = ("is_active", "country")
    search_fields = ("name", "contact_email")
    readonly_fields = ("id", "created_at", "updated_at", "visitor_count", "last_visit")
    actions = [export_as_csv]


# =============================================================================
# 7. TERMS & WAIVERS
# =============================================================================

class TermsAcceptanceInline(admin.TabularInline):
    model = TermsAcceptance
    extra = 0
    fields = ("visitor", "version", "accepted_at", "ip_address")
    readonly_fields = ("visitor", "version", "accepted_at", "ip_address")
    can_delete = False


@admin.register(TermsAndWaivers)
class TermsAndWaiversAdmin(admin.ModelAdmin):
    list_display = ("title", "terms_type", "site", "version", "is_required", "is_active", "effective_date")
    list_filter = ("terms_type", "is_active", "is_required", "site")
    search_fields = ("title", "content")
    readonly_fields = ("id", "created_at", "updated_at")
    inlines = [TermsAcceptanceInline]


# =============================================================================
# 8. AUDIT LOG (read-only)
# =============================================================================

@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("action", "model_name", "object_id", "user", "ip_address", "site", "created_at")
    list_filter = ("action", "model_name", "site")
    search_fields = ("description", "model_name", "object_id", "user__email", "ip_address")
    readonly_fields = ("id", "created_at", "updated_at", "user", "action",
                       "model_name", "object_id", "description", "ip_address",
                       "user_agent", "site")
    date_hierarchy = "created_at"

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

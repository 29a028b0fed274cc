import uuid

import django.contrib.auth.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import guard.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("auth", "0012_alter_user_first_name_max_length"),
    ]

    operations = [
        migrations.CreateModel(
            name="User",
            fields=[
                ("password", models.CharField(max_length=128, verbose_name="password")),
                ("last_login", models.DateTimeField(blank=True, null=True, verbose_name="last login")),
                ("is_superuser", models.BooleanField(default=False, help_text="Designates that this user has all permissions without explicitly assigning them.", verbose_name="superuser status")),
                ("username", models.CharField(error_messages={"unique": "A user with that username already exists."}, help_text="Required. 150 characters or fewer. Letters, digits and @/./+/-/_ only.", max_length=150, unique=True, validators=[django.contrib.auth.validators.UnicodeUsernameValidator()], verbose_name="username")),
                ("first_name", models.CharField(blank=True, max_length=150, verbose_name="first name")),
                ("last_name", models.CharField(blank=True, max_length=150, verbose_name="last name")),
                ("is_staff", models.BooleanField(default=False, help_text="Designates whether the user can log into this admin site.", verbose_name="staff status")),
                ("is_active", models.BooleanField(default=True, help_text="Designates whether this user should be treated as active. Unselect this instead of deleting accounts.", verbose_name="active")),
                ("date_joined", models.DateTimeField(default=django.utils.timezone.now, verbose_name="date joined")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("full_name", models.CharField(max_length=200)),
                ("email", models.EmailField(max_length=254, unique=True)),
                ("role", models.CharField(choices=[("SUPER_ADMIN", "Super Admin"), ("ADMIN", "Admin"), ("SITE_MANAGER", "Site Manager"), ("SECURITY_GUARD", "Security Guard"), ("RECEPTIONIST", "Receptionist")], default="SECURITY_GUARD", max_length=20)),
                ("phone", models.CharField(blank=True, max_length=20)),
                ("address", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("admin", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="team", to=settings.AUTH_USER_MODEL)),
                ("groups", models.ManyToManyField(blank=True, help_text="The groups this user belongs to. A user will get all permissions granted to each of their groups.", related_name="user_set", related_query_name="user", to="auth.group", verbose_name="groups")),
                ("user_permissions", models.ManyToManyField(blank=True, help_text="Specific permissions for this user.", related_name="user_set", related_query_name="user", to="auth.permission", verbose_name="user permissions")),
            ],
            options={
                "ordering": ["full_name"],
            },
            managers=[
                ("objects", guard.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name="Site",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=200)),
                ("address", models.CharField(blank=True, max_length=255)),
                ("city", models.CharField(blank=True, max_length=100)),
                ("state", models.CharField(blank=True, max_length=100)),
                ("zip_code", models.CharField(blank=True, max_length=20)),
                ("country", models.CharField(default="USA", max_length=100)),
                ("is_active", models.BooleanField(default=True)),
                ("subscription_status", models.CharField(choices=[("ACTIVE", "Active"), ("INACTIVE", "Inactive"), ("CANCELLED", "Cancelled"), ("PAST_DUE", "Past Due")], default="INACTIVE", max_length=20)),
                ("stripe_customer_id", models.CharField(blank=True, max_length=100)),
                ("stripe_subscription_id", models.CharField(blank=True, max_length=100)),
                ("current_period_start", models.DateTimeField(blank=True, null=True)),
                ("current_period_end", models.DateTimeField(blank=True, null=True)),
                ("subscription_plan", models.CharField(choices=[("BASIC", "Basic"), ("PREMIUM", "Premium"), ("ENTERPRISE", "Enterprise")], default="BASIC", max_length=20)),
                ("settings", models.JSONField(blank=True, default=guard.models.default_site_settings)),
                ("contact_phone", models.CharField(blank=True, max_length=20)),
                ("contact_email", models.EmailField(blank=True, max_length=254)),
                ("emergency_phone", models.CharField(blank=True, max_length=20)),
                ("admin", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="sites", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.AddField(
            model_name="user",
            name="assigned_site",
            field=models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="staff", to="guard.site"),
        ),
        migrations.AddField(
            model_name="user",
            name="managed_sites",
            field=models.ManyToManyField(blank=True, related_name="managers", to="guard.site"),
        ),
        migrations.CreateModel(
            name="AccessPoint",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=100)),
                ("description", models.TextField(blank=True)),
                ("type", models.CharField(choices=[("MAIN_GATE", "Main Gate"), ("SIDE_ENTRANCE", "Side Entrance"), ("LOADING_DOCK", "Loading Dock"), ("EMERGENCY_EXIT", "Emergency Exit"), ("RESTRICTED_AREA", "Restricted Area")], default="MAIN_GATE", max_length=20)),
                ("location", models.CharField(blank=True, max_length=255)),
                ("is_active", models.BooleanField(default=True)),
                ("access_level", models.CharField(choices=[("PUBLIC", "Public"), ("RESTRICTED", "Restricted"), ("VIP_ONLY", "VIP Only"), ("STAFF_ONLY", "Staff Only")], default="PUBLIC", max_length=20)),
                ("required_ppe", models.JSONField(blank=True, default=list)),
                ("operating_hours", models.JSONField(blank=True, default=guard.models.default_operating_hours)),
                ("capacity", models.PositiveIntegerField(default=50)),
                ("current_occupancy", models.PositiveIntegerField(default=0)),
                ("assigned_staff", models.ManyToManyField(blank=True, related_name="access_points", to=settings.AUTH_USER_MODEL)),
                ("site", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="access_points", to="guard.site")),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Visitor",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("full_name", models.CharField(max_length=200)),
                ("email", models.EmailField(max_length=254)),
                ("phone", models.CharField(blank=True, max_length=30)),
                ("company", models.CharField(blank=True, max_length=200)),
                ("purpose", models.CharField(blank=True, max_length=500)),
                ("contact_person", models.CharField(blank=True, max_length=200)),
                ("check_in_time", models.DateTimeField(blank=True, null=True)),
                ("check_out_time", models.DateTimeField(blank=True, null=True)),
                ("status", models.CharField(choices=[("PENDING", "Pending"), ("CHECKED_IN", "Checked In"), ("CHECKED_OUT", "Checked Out"), ("OVERSTAYED", "Overstayed")], default="PENDING", max_length=20)),
                ("badge_number", models.CharField(blank=True, max_length=20, unique=True)),
                ("qr_code", models.TextField(blank=True)),
                ("ppe_verified", models.BooleanField(default=False)),
                ("safety_induction_completed", models.BooleanField(default=False)),
                ("safety_induction_date", models.DateTimeField(blank=True, null=True)),
                ("emergency_contact_name", models.CharField(blank=True, max_length=200)),
                ("emergency_contact_phone", models.CharField(blank=True, max_length=30)),
                ("emergency_contact_relationship", models.CharField(blank=True, max_length=100)),
                ("special_access", models.CharField(choices=[("NONE", "None"), ("VIP", "VIP"), ("AUDITOR", "Auditor"), ("INSPECTOR", "Inspector"), ("CONTRACTOR", "Contractor")], default="NONE", max_length=20)),
                ("special_access_expiry", models.DateTimeField(blank=True, null=True)),
                ("host_name", models.CharField(blank=True, max_length=200)),
                ("host_email", models.EmailField(blank=True, max_length=254)),
                ("host_phone", models.CharField(blank=True, max_length=30)),
                ("host_department", models.CharField(blank=True, max_length=100)),
                ("expected_duration", models.PositiveIntegerField(default=4, help_text="Hours")),
                ("documents", models.JSONField(blank=True, default=list)),
                ("is_pre_registered", models.BooleanField(default=False)),
                ("pre_registration_date", models.DateTimeField(blank=True, null=True)),
                ("pre_registration_token", models.CharField(blank=True, db_index=True, max_length=100)),
                ("notes", models.TextField(blank=True)),
                ("security_notes", models.TextField(blank=True)),
                ("overstay_alerted_at", models.DateTimeField(blank=True, null=True)),
                ("access_point", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="visitors", to="guard.accesspoint")),
                ("authorized_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="authorized_visitors", to=settings.AUTH_USER_MODEL)),
                ("checked_in_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="checked_in_visitors", to=settings.AUTH_USER_MODEL)),
                ("checked_out_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="checked_out_visitors", to=settings.AUTH_USER_MODEL)),
                ("site", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="visitors", to="guard.site")),
            ],
            options={
                "ordering": ["-check_in_time", "-created_at"],
                "indexes": [
                    models.Index(fields=["site", "status"], name="guard_visit_site_id_4c1d2e_idx"),
                    models.Index(fields=["site", "check_in_time"], name="guard_visit_site_id_9a7b3f_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Incident",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("title", models.CharField(max_length=200)),
                ("description", models.TextField()),
                ("incident_type", models.CharField(choices=[("SAFETY", "Safety"), ("SECURITY", "Security"), ("PROPERTY_DAMAGE", "Property Damage"), ("INJURY", "Injury"), ("ENVIRONMENTAL", "Environmental"), ("OTHER", "Other")], max_length=20)),
                ("severity", models.CharField(choices=[("LOW", "Low"), ("MEDIUM", "Medium"), ("HIGH", "High"), ("CRITICAL", "Critical")], default="MEDIUM", max_length=20)),
                ("status", models.CharField(choices=[("REPORTED", "Reported"), ("INVESTIGATING", "Investigating"), ("RESOLVED", "Resolved"), ("CLOSED", "Closed")], default="REPORTED", max_length=20)),
                ("building", models.CharField(blank=True, max_length=100)),
                ("floor", models.CharField(blank=True, max_length=50)),
                ("specific_location", models.CharField(blank=True, max_length=255)),
                ("latitude", models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ("longitude", models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ("reported_date", models.DateTimeField(default=django.utils.timezone.now)),
                ("incident_date", models.DateTimeField()),
                ("people_involved", models.JSONField(blank=True, default=list)),
                ("witnesses", models.JSONField(blank=True, default=list)),
                ("investigation_start", models.DateTimeField(blank=True, null=True)),
                ("investigation_end", models.DateTimeField(blank=True, null=True)),
                ("findings", models.TextField(blank=True)),
                ("recommendations", models.TextField(blank=True)),
                ("corrective_actions", models.JSONField(blank=True, default=list)),
                ("follow_up_actions", models.JSONField(blank=True, default=list)),
                ("evidence", models.JSONField(blank=True, default=list)),
                ("reported_to_authorities", models.BooleanField(default=False)),
                ("authority_contact", models.CharField(blank=True, max_length=200)),
                ("report_number", models.CharField(blank=True, max_length=100)),
                ("report_date", models.DateTimeField(blank=True, null=True)),
                ("resolved_date", models.DateTimeField(blank=True, null=True)),
                ("resolution_notes", models.TextField(blank=True)),
                ("lessons_learned", models.TextField(blank=True)),
                ("tags", models.JSONField(blank=True, default=list)),
                ("access_point", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="incidents", to="guard.accesspoint")),
                ("assigned_to", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="assigned_incidents", to=settings.AUTH_USER_MODEL)),
                ("related_incidents", models.ManyToManyField(blank=True, to="guard.incident")),
                ("reported_by", models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="reported_incidents", to=settings.AUTH_USER_MODEL)),
                ("resolved_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="resolved_incidents", to=settings.AUTH_USER_MODEL)),
                ("site", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="incidents", to="guard.site")),
            ],
            options={
                "ordering": ["-incident_date"],
                "indexes": [
                    models.Index(fields=["site", "status"], name="guard_incid_site_id_5e8f10_idx"),
                    models.Index(fields=["site", "incident_date"], name="guard_incid_site_id_b2c4d6_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BannedVisitor",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("full_name", models.CharField(max_length=200)),
                ("email", models.EmailField(blank=True, max_length=254)),
                ("phone", models.CharField(blank=True, max_length=30)),
                ("company", models.CharField(blank=True, max_length=200)),
                ("reason", models.TextField()),
                ("description", models.TextField(blank=True)),
                ("banned_date", models.DateTimeField(default=django.utils.timezone.now)),
                ("expiry_date", models.DateTimeField(blank=True, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("review_date", models.DateTimeField(blank=True, null=True)),
                ("review_notes", models.TextField(blank=True)),
                ("incident_report", models.TextField(blank=True)),
                ("evidence", models.JSONField(blank=True, default=list)),
                ("appeal_status", models.CharField(choices=[("NONE", "None"), ("PENDING", "Pending"), ("APPROVED", "Approved"), ("REJECTED", "Rejected")], default="NONE", max_length=20)),
                ("banned_by", models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="bans_issued", to=settings.AUTH_USER_MODEL)),
                ("related_incidents", models.ManyToManyField(blank=True, related_name="bans", to="guard.incident")),
                ("reviewed_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="bans_reviewed", to=settings.AUTH_USER_MODEL)),
                ("site", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="banned_visitors", to="guard.site")),
            ],
            options={
                "ordering": ["-banned_date"],
                "indexes": [
                    models.Index(fields=["site", "is_active"], name="guard_banne_site_id_7d1a2b_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Activity",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("type", models.CharField(choices=[("CHECKIN", "Check-in"), ("CHECKOUT", "Check-out"), ("INCIDENT", "Incident"), ("SECURITY_ALERT", "Security Alert"), ("ACCESS_POINT_CREATED", "Access Point Created"), ("ACCESS_POINT_UPDATED", "Access Point Updated"), ("EMERGENCY_ACTIVATED", "Emergency Activated"), ("EMERGENCY_DEACTIVATED", "Emergency Deactivated"), ("EMERGENCY_NOTIFICATION", "Emergency Notification")], max_length=30)),
                ("title", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("priority", models.CharField(choices=[("LOW", "Low"), ("MEDIUM", "Medium"), ("HIGH", "High"), ("CRITICAL", "Critical")], default="MEDIUM", max_length=20)),
                ("status", models.CharField(choices=[("ACTIVE", "Active"), ("ACKNOWLEDGED", "Acknowledged"), ("RESOLVED", "Resolved")], default="ACTIVE", max_length=20)),
                ("timestamp", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("access_point", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="activities", to="guard.accesspoint")),
                ("incident", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="activities", to="guard.incident")),
                ("performed_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="activities", to=settings.AUTH_USER_MODEL)),
                ("site", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="activities", to="guard.site")),
                ("visitor", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="activities", to="guard.visitor")),
            ],
            options={
                "verbose_name_plural": "activities",
                "ordering": ["-timestamp"],
                "indexes": [
                    models.Index(fields=["site", "timestamp"], name="guard_activ_site_id_3f6e9a_idx"),
                    models.Index(fields=["type", "timestamp"], name="guard_activ_type_8c2d1e_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ActivityAlert",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("type", models.CharField(choices=[("VISITOR_CHECKIN", "Visitor Check-in"), ("VISITOR_CHECKOUT", "Visitor Check-out"), ("OVERSTAY", "Overstay"), ("BANNED_VISITOR", "Banned Visitor"), ("SECURITY_BREACH", "Security Breach"), ("SYSTEM", "System")], max_length=20)),
                ("title", models.CharField(max_length=200)),
                ("message", models.TextField()),
                ("severity", models.CharField(choices=[("INFO", "Info"), ("WARNING", "Warning"), ("ERROR", "Error"), ("CRITICAL", "Critical")], default="INFO", max_length=20)),
                ("status", models.CharField(choices=[("UNREAD", "Unread"), ("READ", "Read"), ("ACKNOWLEDGED", "Acknowledged"), ("DISMISSED", "Dismissed")], default="UNREAD", max_length=20)),
                ("target_roles", models.JSONField(blank=True, default=list)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("expires_at", models.DateTimeField(default=guard.models.default_alert_expiry)),
                ("access_point", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="alerts", to="guard.accesspoint")),
                ("site", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="alerts", to="guard.site")),
                ("target_users", models.ManyToManyField(blank=True, related_name="targeted_alerts", to=settings.AUTH_USER_MODEL)),
                ("visitor", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="alerts", to="guard.visitor")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["site", "status"], name="guard_activ_site_id_6a0b4c_idx"),
                    models.Index(fields=["site", "created_at"], name="guard_activ_site_id_d5e7f9_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AlertReceipt",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("kind", models.CharField(choices=[("READ", "Read"), ("ACKNOWLEDGED", "Acknowledged")], max_length=20)),
                ("note", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("alert", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="receipts", to="guard.activityalert")),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="alert_receipts", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "unique_together": {("alert", "user", "kind")},
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("plan", models.CharField(choices=[("STARTER", "Starter"), ("PROFESSIONAL", "Professional"), ("ENTERPRISE", "Enterprise")], default="STARTER", max_length=20)),
                ("status", models.CharField(choices=[("ACTIVE", "Active"), ("CANCELED", "Canceled"), ("EXPIRED", "Expired")], default="ACTIVE", max_length=20)),
                ("start_date", models.DateTimeField(default=django.utils.timezone.now)),
                ("end_date", models.DateTimeField()),
                ("member_limit", models.PositiveIntegerField(default=5)),
                ("admin", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="subscription", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Company",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=200, unique=True)),
                ("contact_email", models.EmailField(max_length=254)),
                ("contact_phone", models.CharField(max_length=30)),
                ("street", models.CharField(blank=True, max_length=255)),
                ("city", models.CharField(blank=True, max_length=100)),
                ("state", models.CharField(blank=True, max_length=100)),
                ("zip_code", models.CharField(blank=True, max_length=20)),
                ("country", models.CharField(blank=True, max_length=100)),
                ("notes", models.TextField(blank=True)),
                ("is_active", models.BooleanField(default=True)),
                ("visitor_count", models.PositiveIntegerField(default=0)),
                ("last_visit", models.DateTimeField(blank=True, null=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="companies_created", to=settings.AUTH_USER_MODEL)),
                ("updated_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="companies_updated", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name_plural": "companies",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="TermsAndWaivers",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("title", models.CharField(max_length=200)),
                ("terms_type", models.CharField(choices=[("TERMS_OF_ACCESS", "Terms of Access"), ("LIABILITY_WAIVER", "Liability Waiver"), ("SAFETY_AGREEMENT", "Safety Agreement"), ("PRIVACY_POLICY", "Privacy Policy"), ("CUSTOM", "Custom")], default="TERMS_OF_ACCESS", max_length=20)),
                ("content", models.TextField()),
                ("version", models.CharField(default="1.0", max_length=20)),
                ("is_active", models.BooleanField(default=True)),
                ("is_required", models.BooleanField(default=True)),
                ("effective_date", models.DateTimeField(default=django.utils.timezone.now)),
                ("expiry_date", models.DateTimeField(blank=True, null=True)),
                ("custom_fields", models.JSONField(blank=True, default=list)),
                ("created_by", models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="terms_created", to=settings.AUTH_USER_MODEL)),
                ("last_modified_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="terms_modified", to=settings.AUTH_USER_MODEL)),
                ("site", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="terms", to="guard.site")),
            ],
            options={
                "verbose_name_plural": "terms and waivers",
                "ordering": ["-effective_date"],
            },
        ),
        migrations.CreateModel(
            name="TermsAcceptance",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("accepted_at", models.DateTimeField(auto_now_add=True)),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
                ("user_agent", models.TextField(blank=True)),
                ("signature", models.TextField(blank=True)),
                ("version", models.CharField(max_length=20)),
                ("terms", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="acceptances", to="guard.termsandwaivers")),
                ("visitor", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="terms_acceptances", to="guard.visitor")),
            ],
            options={
                "ordering": ["-accepted_at"],
            },
        ),
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("action", models.CharField(choices=[("CREATE", "Created"), ("UPDATE", "Updated"), ("DELETE", "Deleted"), ("LOGIN", "Login"), ("LOGOUT", "Logout"), ("ACTIVATE", "Activated"), ("DEACTIVATE", "Deactivated"), ("PASSWORD_RESET", "Password Reset"), ("SUBSCRIPTION", "Subscription Changed"), ("EXPORT", "Data Exported")], max_length=30)),
                ("model_name", models.CharField(help_text="Django model name", max_length=100)),
                ("object_id", models.CharField(blank=True, max_length=100)),
                ("description", models.TextField()),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
                ("user_agent", models.TextField(blank=True)),
                ("site", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to="guard.site")),
                ("user", models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["model_name", "object_id"], name="guard_audit_model_n_1b9c3d_idx"),
                ],
            },
        ),
    ]

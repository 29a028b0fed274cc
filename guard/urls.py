from django.urls import path
from . import views

app_name = "guard"

urlpatterns = [

    # =========================================================================
    # SYSTEM / HEALTH
    # =========================================================================
    path("health/",                     views.health_check,                  name="health-check"),

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================
    path("auth/register/",              views.register_view,                 name="auth-register"),
    path("auth/login/",                 views.login_view,                    name="auth-login"),
    path("auth/logout/",                views.logout_view,                   name="auth-logout"),
    path("auth/token/refresh/",         views.token_refresh_view,            name="auth-token-refresh"),
    path("auth/change-password/",       views.change_password_view,          name="auth-change-password"),
    path("auth/profile/",               views.profile_view,                  name="auth-profile"),
    path("auth/me/",                    views.me_view,                       name="auth-me"),

    # =========================================================================
    # USERS
    # =========================================================================
    path("users/",                                  views.user_list_create,          name="user-list"),
    path("users/stats/dashboard/",                  views.user_stats,                name="user-stats"),
    path("users/<uuid:user_id>/",                   views.user_detail,               name="user-detail"),
    path("users/<uuid:user_id>/activate/",          views.user_activate,             name="user-activate"),
    path("users/<uuid:user_id>/reset-password/",    views.user_reset_password,       name="user-reset-password"),

    # =========================================================================
    # SITES
    # =========================================================================
    path("sites/",                                  views.site_list_create,          name="site-list"),
    path("sites/<uuid:site_id>/",                   views.site_detail,               name="site-detail"),
    path("sites/<uuid:site_id>/access-points/",     views.site_access_points,        name="site-access-points"),
    path("sites/<uuid:site_id>/stats/",             views.site_stats,                name="site-stats"),

    # =========================================================================
    # ACCESS POINTS
    # =========================================================================
    path("access-points/",                                      views.access_point_list_create,  name="access-point-list"),
    path("access-points/<uuid:access_point_id>/",               views.access_point_detail,       name="access-point-detail"),
    path("access-points/<uuid:access_point_id>/assign-staff/",  views.access_point_assign_staff, name="access-point-assign-staff"),

    # =========================================================================
    # VISITORS
    # =========================================================================
    path("visitors/",                               views.visitor_list,              name="visitor-list"),
    path("visitors/current/",                       views.visitor_current,           name="visitor-current"),
    path("visitors/checkin/",                       views.visitor_checkin,           name="visitor-checkin"),
    path("visitors/stats/dashboard/",               views.visitor_dashboard_stats,   name="visitor-stats"),
    path("visitors/<uuid:visitor_id>/",             views.visitor_detail,            name="visitor-detail"),
    path("visitors/<uuid:visitor_id>/checkout/",    views.visitor_checkout,          name="visitor-checkout"),

    # =========================================================================
    # BANNED VISITORS
    # =========================================================================
    path("banned-visitors/",                            views.banned_list_create,    name="banned-list"),
    path("banned-visitors/check/",                      views.banned_check,          name="banned-check"),
    path("banned-visitors/stats/dashboard/",            views.banned_stats,          name="banned-stats"),
    path("banned-visitors/<uuid:banned_id>/",           views.banned_detail,         name="banned-detail"),
    path("banned-visitors/<uuid:banned_id>/review/",    views.banned_review,         name="banned-review"),

    # =========================================================================
    # INCIDENTS
    # =========================================================================
    path("incidents/",                              views.incident_list_create,      name="incident-list"),
    path("incidents/<uuid:incident_id>/",           views.incident_detail,           name="incident-detail"),
    path("incidents/<uuid:incident_id>/assign/",    views.incident_assign,           name="incident-assign"),
    path("incidents/<uuid:incident_id>/resolve/",   views.incident_resolve,          name="incident-resolve"),

    # =========================================================================
    # COMPANIES
    # =========================================================================
    path("companies/",                              views.company_list_create,       name="company-list"),
    path("companies/stats/",                        views.company_stats,             name="company-stats"),
    path("companies/<uuid:company_id>/",            views.company_detail,            name="company-detail"),

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================
    path("subscriptions/",                                  views.subscription_create,   name="subscription-create"),
    path("subscriptions/admin/",                            views.subscription_admin,    name="subscription-admin"),
    path("subscriptions/all/",                              views.subscription_all,      name="subscription-all"),
    path("subscriptions/<uuid:subscription_id>/status/",    views.subscription_status,   name="subscription-status"),

    # =========================================================================
    # SUPER ADMIN CONSOLE
    # =========================================================================
    path("admin/admins/",                               views.admin_list,            name="admin-list"),
    path("admin/register-admin/",                       views.admin_register,        name="admin-register"),
    path("admin/subscription/activate-by-email/",       views.admin_activate_subscription_by_email,
                                                                                     name="admin-activate-by-email"),
    path("admin/<uuid:admin_id>/",                      views.admin_delete,          name="admin-delete"),
    path("admin/<uuid:admin_id>/details/",              views.admin_details,         name="admin-details"),
    path("admin/<uuid:admin_id>/activate/",             views.admin_activate,        name="admin-activate"),
    path("admin/<uuid:admin_id>/subscription/",         views.admin_subscription,    name="admin-subscription"),

    # =========================================================================
    # EMERGENCY
    # =========================================================================
    path("emergency/visitors/",         views.emergency_visitors,            name="emergency-visitors"),
    path("emergency/contacts/",         views.emergency_contacts,            name="emergency-contacts"),
    path("emergency/activate/",         views.emergency_activate,            name="emergency-activate"),
    path("emergency/deactivate/",       views.emergency_deactivate,          name="emergency-deactivate"),
    path("emergency/notify/",           views.emergency_notify,              name="emergency-notify"),
    path("emergency/status/",           views.emergency_status,              name="emergency-status"),

    # =========================================================================
    # ACTIVITIES & ALERTS
    # =========================================================================
    path("activities/recent/",                                  views.activity_recent,   name="activity-recent"),
    path("activities/stats/",                                   views.activity_stats,    name="activity-stats"),
    path("activities/alerts/",                                  views.alert_list,        name="alert-list"),
    path("activities/alerts/cleanup/",                          views.alert_cleanup,     name="alert-cleanup"),
    path("activities/alerts/<uuid:alert_id>/read/",             views.alert_read,        name="alert-read"),
    path("activities/alerts/<uuid:alert_id>/acknowledge/",      views.alert_acknowledge, name="alert-acknowledge"),
    path("activities/alerts/<uuid:alert_id>/dismiss/",          views.alert_dismiss,     name="alert-dismiss"),

    # =========================================================================
    # TIMELINE
    # =========================================================================
    path("timeline/events/",            views.timeline_events,               name="timeline-events"),
    path("timeline/stats/",             views.timeline_stats,                name="timeline-stats"),

    # =========================================================================
    # REPORTS
    # =========================================================================
    path("reports/visitor-summary/",    views.report_visitor_summary,        name="report-visitor-summary"),
    path("reports/incident-summary/",   views.report_incident_summary,       name="report-incident-summary"),
    path("reports/security-summary/",   views.report_security_summary,       name="report-security-summary"),
    path("reports/export/",             views.report_export,                 name="report-export"),

    # =========================================================================
    # PRE-REGISTRATION
    # =========================================================================
    path("preregistration/send-invitation/",            views.prereg_send_invitation,    name="prereg-send-invitation"),
    path("preregistration/pending/list/",               views.prereg_pending,            name="prereg-pending"),
    path("preregistration/<str:token>/",                views.prereg_detail,             name="prereg-detail"),
    path("preregistration/<str:token>/complete/",       views.prereg_complete,           name="prereg-complete"),
    path("preregistration/<str:token>/checkin/",        views.prereg_checkin,            name="prereg-checkin"),

    # =========================================================================
    # STRIPE BILLING
    # =========================================================================
    path("stripe/create-customer/",                 views.stripe_create_customer,     name="stripe-create-customer"),
    path("stripe/create-subscription/",             views.stripe_create_subscription, name="stripe-create-subscription"),
    path("stripe/subscription/<uuid:site_id>/",     views.stripe_site_subscription,   name="stripe-site-subscription"),
    path("stripe/cancel-subscription/",             views.stripe_cancel_subscription, name="stripe-cancel-subscription"),
    path("stripe/webhook/",                         views.stripe_webhook,             name="stripe-webhook"),

    # =========================================================================
    # TERMS & WAIVERS
    # =========================================================================
    path("terms-and-waivers/",                              views.terms_list_create,     name="terms-list"),
    path("terms-and-waivers/<uuid:terms_id>/",              views.terms_detail,          name="terms-detail"),
    path("terms-and-waivers/<uuid:terms_id>/accept/",       views.terms_accept,          name="terms-accept"),
]

"""
Outbound notifications: email through SendGrid, SMS through Twilio.

Both channels are best-effort. When credentials are missing the call logs a
warning and reports failure instead of raising, so check-ins and emergency
activations never fail because a provider is down or unconfigured.
"""

import base64
import io
import logging

import qrcode
from django.conf import settings
from django.template.loader import render_to_string
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail
from twilio.base.exceptions import TwilioException
from twilio.rest import Client

logger = logging.getLogger(__name__)

SMS_NOT_CONFIGURED = "Twilio not configured"


def email_configured():
    return bool(settings.SENDGRID_API_KEY)


def sms_configured():
    return bool(
        settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN and settings.TWILIO_FROM_NUMBER
    )


# ---------------------------------------------------------------------------
# EMAIL
# ---------------------------------------------------------------------------

def send_email(to, subject, html_content, from_name="AcsoGuard"):
    """Send one HTML email. Returns True when SendGrid accepted it."""
    recipients = [to] if isinstance(to, str) else list(to or [])
    recipients = sorted({address.strip().lower() for address in recipients if address and address.strip()})
    if not recipients:
        return False
    if not email_configured():
        logger.warning("SendGrid not configured; skipped email '%s'", subject)
        return False
    message = Mail(
        from_email=(settings.SENDER_EMAIL, from_name),
        to_emails=recipients,
        subject=subject,
        html_content=html_content,
        is_multiple=len(recipients) > 1,
    )
    try:
        response = SendGridAPIClient(settings.SENDGRID_API_KEY).send(message)
    except Exception:
        logger.exception("SendGrid rejected email '%s'", subject)
        return False
    logger.info("Email '%s' sent to %d recipient(s) [%s]", subject, len(recipients), response.status_code)
    return True


def send_banned_visitor_alert(site, attempt, ban, recipients):
    """Tell site managers and guards that a banned person tried to get in."""
    html = render_to_string("guard/email/banned_visitor_alert.html", {
        "site": site, "attempt": attempt, "ban": ban,
    })
    return send_email(recipients, f"SECURITY ALERT: Banned visitor at {site.name}", html, site.name)


def send_preregistration_invitation(visitor, site, url, invited_by=None):
    html = render_to_string("guard/email/preregistration_invitation.html", {
        "visitor": visitor, "site": site, "url": url, "invited_by": invited_by,
        "ttl_hours": settings.PREREGISTRATION_LINK_TTL_HOURS,
    })
    return send_email(visitor.email, f"You're invited to visit {site.name}", html, site.name)


def send_preregistration_confirmation(visitor, site, qr_data_url):
    html = render_to_string("guard/email/preregistration_confirmation.html", {
        "visitor": visitor, "site": site, "qr_data_url": qr_data_url,
    })
    return send_email(visitor.email, f"Pre-registration confirmed for {site.name}", html, site.name)


def send_emergency_email(recipients, site, message, emergency_type="notification"):
    html = render_to_string("guard/email/emergency_notice.html", {
        "site": site, "message": message, "emergency_type": emergency_type,
    })
    return send_email(recipients, f"EMERGENCY at {site.name}", html, site.name)


def build_qr_data_url(payload):
    """PNG QR code for `payload`, as a data: URL that embeds in email/HTML."""
    image = qrcode.make(payload)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


# ---------------------------------------------------------------------------
# SMS
# ---------------------------------------------------------------------------

def send_sms_batch(numbers, body):
    """
    Text every unique number. Returns {"sent": n, "failures": [{"to", "error"}]};
    one bad number never stops the rest.
    """
    unique = []
    for number in numbers or []:
        number = (number or "").strip()
        if number and number not in unique:
            unique.append(number)
    result = {"sent": 0, "failures": []}
    if not unique:
        return result
    if not sms_configured():
        logger.warning("Twilio not configured; %d SMS not sent", len(unique))
        result["failures"] = [{"to": number, "error": SMS_NOT_CONFIGURED} for number in unique]
        return result

    client = Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
    for number in unique:
        try:
            client.messages.create(body=body, from_=settings.TWILIO_FROM_NUMBER, to=number)
            result["sent"] += 1
        except TwilioException as exc:
            logger.warning("SMS to %s failed: %s", number, exc)
            result["failures"].append({"to": number, "error": str(exc)})
    logger.info("SMS batch: %d sent, %d failed", result["sent"], len(result["failures"]))
    return result

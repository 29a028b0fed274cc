import logging

from django.core.management.base import BaseCommand
from django.utils import timezone

from guard.models import ActivityAlert, Visitor
from guard.realtime import emit

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Raise an overstay alert for every checked-in visitor past their expected duration."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run", action="store_true",
            help="List overstayed visitors without alerting.",
        )

    def handle(self, *args, **options):
        now = timezone.now()
        candidates = Visitor.objects.filter(
            status="CHECKED_IN", check_in_time__isnull=False, overstay_alerted_at__isnull=True,
        ).select_related("site", "access_point")
        flagged = 0
        for visitor in candidates:
            if not visitor.has_overstayed(now):
                continue
            flagged += 1
            if options["dry_run"]:
                self.stdout.write(f"{visitor.badge_number}  {visitor.full_name}  ({visitor.site.name})")
                continue
            alert = ActivityAlert.create_visitor_alert("OVERSTAY", visitor)
            visitor.overstay_alerted_at = now
            visitor.save(update_fields=["overstay_alerted_at", "updated_at"])
            emit("overstay_alert", {
                "alert_id": str(alert.id),
                "visitor": {
                    "id": str(visitor.id),
                    "full_name": visitor.full_name,
                    "company": visitor.company,
                    "badge_number": visitor.badge_number,
                    "check_in_time": visitor.check_in_time,
                    "expected_duration": visitor.expected_duration,
                },
                "site_id": str(visitor.site_id),
                "message": alert.message,
            }, site_id=visitor.site_id, broadcast=False)
            logger.info("Overstay flagged for %s at %s", visitor.full_name, visitor.site.name)

        verb = "would be flagged" if options["dry_run"] else "flagged"
        self.stdout.write(self.style.SUCCESS(f"{flagged} overstayed visitor(s) {verb}."))

"""
Set the platform payout hold period.

New escrows created by webhook ingestion become due for automatic release
this many seconds after checkout. Existing escrows keep their release time.

Usage:
    python manage.py set_payout_hold 300
    python manage.py set_payout_hold --clear
"""

from django.core.management.base import BaseCommand, CommandError

from sites.models import PlatformSettings


class Command(BaseCommand):
    help = "Set the payout hold period (seconds) applied to new escrows"

    def add_arguments(self, parser):
        parser.add_argument(
            "seconds",
            nargs="?",
            type=int,
            help="Hold period in seconds",
        )
        parser.add_argument(
            "--clear",
            action="store_true",
            help="Remove the override and fall back to ESCROW_DEFAULT_HOLD_SECONDS",
        )

    def handle(self, *args, **options):
        seconds = options["seconds"]
        clear = options["clear"]

        if clear and seconds is not None:
            raise CommandError("Pass either a number of seconds or --clear, not both")
        if not clear and seconds is None:
            raise CommandError("A number of seconds is required")
        if seconds is not None and seconds < 0:
            raise CommandError("Hold period cannot be negative")

        platform = PlatformSettings.load()
        platform.payout_hold_seconds = None if clear else seconds
        platform.save(update_fields=["payout_hold_seconds", "updated_at"])

        self.stdout.write(
            self.style.SUCCESS(
                f"Payout hold period is now {platform.effective_hold_seconds} seconds"
            )
        )

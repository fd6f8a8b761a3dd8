"""Management command to expire overdue vouchers (run from cron)."""

from django.core.management.base import BaseCommand

from rewardman.services import RedemptionEngine


class Command(BaseCommand):
    help = "Expire issued/presented vouchers past their expiry (no refund)"

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Only count overdue vouchers",
        )

    def handle(self, *args, **options):
        engine = RedemptionEngine.default()
        count = engine.expire_overdue(dry_run=options["dry_run"])
        if options["dry_run"]:
            self.stdout.write(f"{count} overdue vouchers would be expired.")
            return
        self.stdout.write(self.style.SUCCESS(f"Expired {count} vouchers."))

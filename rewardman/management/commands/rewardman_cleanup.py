"""Management command to cleanup old redemption requests."""

from django.core.management.base import BaseCommand

from rewardman.models import RedemptionRequest


class Command(BaseCommand):
    help = "Remove redemption requests older than IDEMPOTENCY_RETENTION_DAYS"

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=None,
            help="Override IDEMPOTENCY_RETENTION_DAYS setting",
        )

    def handle(self, *args, **options):
        deleted_count, _ = RedemptionRequest.cleanup_old_requests(days=options["days"])
        self.stdout.write(
            self.style.SUCCESS(f"Deleted {deleted_count} old redemption requests.")
        )

from django.conf import settings
from django.core.management.base import BaseCommand

from core.redis_lock import SingleInstanceLock, LockNotAcquired
from referrals.services import pay_pending_commissions
from wallets.ledger import get_ledger


class Command(BaseCommand):
    help = "Pay referral commissions for every unpaid referred wager"

    def add_arguments(self, parser):
        parser.add_argument(
            "--token-id",
            type=int,
            help="Only pay commissions for this token",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be paid without moving funds",
        )
        parser.add_argument(
            "--no-lock",
            action="store_true",
            help="Skip the Redis single-instance lock",
        )

    def handle(self, *args, **options):
        if options["no_lock"]:
            summary = self._pay(options)
        else:
            try:
                with SingleInstanceLock("referrals:commissions", settings.RECONCILE_LOCK_TTL):
                    summary = self._pay(options)
            except LockNotAcquired:
                self.stdout.write(self.style.WARNING("Another payout run is in progress. Exiting."))
                return

        label = "DRY RUN: would pay" if options["dry_run"] else "Paid"
        self.stdout.write(
            self.style.SUCCESS(
                f"{label} {summary.total_paid} across {summary.paid or summary.processed} "
                f"referrer group(s); {summary.failed} failed"
            )
        )

    def _pay(self, options):
        return pay_pending_commissions(
            get_ledger(),
            token_id=options.get("token_id"),
            dry_run=options["dry_run"],
        )

from django.conf import settings
from django.core.management.base import BaseCommand

from core.redis_lock import SingleInstanceLock, LockNotAcquired
from plinko.services import reconcile_failed_credits, reconcile_unsettled_stakes
from wallets.ledger import get_ledger


class Command(BaseCommand):
    help = "Retry Plinko winnings whose credit failed and refund stakes of aborted rounds"

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit",
            type=int,
            default=100,
            help="Maximum number of rounds and stakes to retry in one run",
        )
        parser.add_argument(
            "--no-lock",
            action="store_true",
            help="Skip the Redis single-instance lock",
        )

    def handle(self, *args, **options):
        ledger = get_ledger()

        if options["no_lock"]:
            credits, stakes = self._reconcile(ledger, options["limit"])
        else:
            try:
                with SingleInstanceLock("plinko:reconcile_credits", settings.RECONCILE_LOCK_TTL):
                    credits, stakes = self._reconcile(ledger, options["limit"])
            except LockNotAcquired:
                self.stdout.write(self.style.WARNING("Another reconciliation is running. Exiting."))
                return

        if not credits.retried and not stakes.checked:
            self.stdout.write("No failed credits to reconcile.")
            return

        if credits.retried:
            self.stdout.write(
                self.style.SUCCESS(
                    f"Retried {credits.retried} round(s): {credits.fixed} credited, {credits.failed} still failing"
                )
            )
        if stakes.checked:
            self.stdout.write(
                self.style.SUCCESS(
                    f"Checked {stakes.checked} stake(s): {stakes.refunded} refunded, "
                    f"{stakes.not_taken} never taken, {stakes.failed} still failing"
                )
            )

    @staticmethod
    def _reconcile(ledger, limit):
        return reconcile_failed_credits(ledger, limit=limit), reconcile_unsettled_stakes(ledger, limit=limit)

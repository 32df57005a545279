from django.core.management.base import BaseCommand, CommandError

from wallets.services import LedgerService


class Command(BaseCommand):
    help = "Checks that every wallet balance equals the sum of its completed ledger entries"

    def handle(self, *args, **options):
        self.stdout.write("Reconciling wallets against the ledger...")
        mismatches = 0
        for wallet, balance, expected in LedgerService.mismatched_wallets():
            mismatches += 1
            self.stdout.write(
                self.style.WARNING(
                    f"Wallet {wallet.pk} (owner {wallet.owner_id}): "
                    f"balance={balance} ledger={expected}"
                )
            )

        if mismatches:
            raise CommandError(f"{mismatches} wallet(s) out of sync with the ledger.")
        self.stdout.write(self.style.SUCCESS("All wallets match their ledger."))

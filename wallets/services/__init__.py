from wallets.services.ledger import LedgerService, to_amount
from wallets.services.wallet import WalletService

__all__ = ["LedgerService", "WalletService", "to_amount"]

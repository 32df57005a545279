from wallets.models.wallet import Wallet
from wallets.models.transaction import ImmutableRecordError, WalletTransaction

__all__ = ["Wallet", "WalletTransaction", "ImmutableRecordError"]

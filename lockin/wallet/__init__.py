"""Wallet ledger exports."""

from .ledger import SpendResult, WalletLedger, WalletSnapshot

__all__ = ["WalletLedger", "WalletSnapshot", "SpendResult"]

"""Shared utility helpers for evo-levels."""

from __future__ import annotations


def short_wallet(wallet: str, length: int = 8) -> str:
    """Abbreviate a wallet address for log lines."""
    if len(wallet) <= length:
        return wallet
    return f"{wallet[:length]}..."

"""Parameter transforms between canonical values and provider formats.

Chain ids, token identifiers, amounts and slippage each have their own
transformer so they can be exercised in isolation.
"""

import re
from decimal import Decimal
from typing import Optional

from crossroute.chains import (
    EVM_ADDRESS_RE,
    SOLANA_ADDRESS_RE,
    SOLANA_CHAIN_ID,
    SOLANA_NATIVE_ADDRESS,
    ChainRegistry,
    ProviderChainId,
    get_chain_registry,
)
from crossroute.errors import InvalidRequest

AMOUNT_RE = re.compile(r"^\d+(\.\d+)?$")
RAW_AMOUNT_RE = re.compile(r"^\d+$")

WRAPPED_SOL_MINT = "So11111111111111111111111111111111111111112"


class ChainTransformer:
    """Canonical chain id <-> provider chain id."""

    def __init__(self, chains: Optional[ChainRegistry] = None):
        self.chains = chains or get_chain_registry()

    def to_provider(self, chain_id: int, provider: str) -> Optional[ProviderChainId]:
        """Return the provider's id, or None when the provider does not support the chain."""
        return self.chains.get_provider_chain_id(chain_id, provider)

    def from_provider(self, provider_chain_id: ProviderChainId, provider: str) -> Optional[int]:
        return self.chains.from_provider_chain_id(provider_chain_id, provider)

    def is_supported(self, chain_id: int, provider: str) -> bool:
        return self.to_provider(chain_id, provider) is not None


class TokenTransformer:
    """Canonical token address -> provider token identifier."""

    def __init__(self, chains: Optional[ChainRegistry] = None):
        self.chains = chains or get_chain_registry()

    def to_provider(self, chain_id: int, address: str, provider: str) -> str:
        """Validate the address for its chain family and map it for the provider.

        Raises:
            InvalidRequest: if the address is not valid for the chain family
        """
        if chain_id == SOLANA_CHAIN_ID:
            if not SOLANA_ADDRESS_RE.match(address):
                raise InvalidRequest(f"Invalid Solana mint address: {address}", {"address": address})
            if provider == "jupiter" and address == SOLANA_NATIVE_ADDRESS:
                return WRAPPED_SOL_MINT
            return address

        if not EVM_ADDRESS_RE.match(address):
            raise InvalidRequest(f"Invalid EVM address: {address}", {"address": address})
        return address

    def from_provider(self, chain_id: int, identifier: str, provider: str) -> str:
        if chain_id == SOLANA_CHAIN_ID:
            return identifier
        return identifier.lower()


class AmountTransformer:
    """Human-readable decimal strings <-> fixed-point integer strings.

    Pure string arithmetic; no floating point is involved in either direction.
    """

    @staticmethod
    def is_valid(amount: str) -> bool:
        return bool(AMOUNT_RE.match(amount or ""))

    @staticmethod
    def to_smallest_unit(amount: str, decimals: int) -> str:
        """Convert ``"1.5"`` with 6 decimals to ``"1500000"``.

        Fractional digits beyond ``decimals`` are truncated.
        """
        if not AMOUNT_RE.match(amount or ""):
            raise InvalidRequest(f"Invalid amount: {amount!r}", {"amount": amount})
        whole, _, frac = amount.partition(".")
        frac = frac[:decimals].ljust(decimals, "0")
        return (whole + frac).lstrip("0") or "0"

    @staticmethod
    def to_human_readable(raw: str, decimals: int) -> str:
        """Convert ``"1500000"`` with 6 decimals to ``"1.5"``."""
        raw = str(raw)
        if not RAW_AMOUNT_RE.match(raw):
            raise InvalidRequest(f"Invalid raw amount: {raw!r}", {"amount": raw})
        if decimals == 0:
            return raw.lstrip("0") or "0"
        padded = raw.rjust(decimals + 1, "0")
        whole = padded[:-decimals].lstrip("0") or "0"
        frac = padded[-decimals:].rstrip("0")
        return f"{whole}.{frac}" if frac else whole

    @classmethod
    def to_raw_int(cls, amount: str, decimals: int) -> int:
        return int(cls.to_smallest_unit(amount, decimals))

    @classmethod
    def from_raw_int(cls, raw: int, decimals: int) -> str:
        return cls.to_human_readable(str(raw), decimals)

    @classmethod
    def normalize(cls, amount) -> str:
        """Render a Decimal or numeric string without exponent or trailing zeros."""
        value = Decimal(str(amount))
        text = format(value, "f")
        if "." in text:
            text = text.rstrip("0").rstrip(".")
        return text or "0"


class SlippageTransformer:
    """Slippage percent <-> basis points / fractions."""

    MIN_SLIPPAGE = 0.0
    MAX_SLIPPAGE = 50.0

    @staticmethod
    def to_bps(percent: float) -> int:
        return int(round(percent * 100))

    @staticmethod
    def from_bps(bps: int) -> float:
        return bps / 100

    @staticmethod
    def to_fraction(percent: float) -> float:
        return percent / 100

    @classmethod
    def is_valid(cls, percent: float, minimum: Optional[float] = None, maximum: Optional[float] = None) -> bool:
        low = cls.MIN_SLIPPAGE if minimum is None else minimum
        high = cls.MAX_SLIPPAGE if maximum is None else maximum
        return low <= percent <= high

    @classmethod
    def clamp(cls, percent: float, minimum: float, maximum: float) -> float:
        return min(max(percent, minimum), maximum)

"""Bridge adapters used by the cross-chain composer."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import httpx

from crossroute.chains import ChainRegistry, TokenRegistry, get_chain_registry
from crossroute.errors import ProviderUnavailable
from crossroute.gas import GasEstimator
from crossroute.routing.transformers import AmountTransformer, ChainTransformer

logger = logging.getLogger(__name__)

BRIDGE_QUOTE_TTL_SECONDS = 60


@dataclass
class BridgeQuote:
    """A quote for moving one token between two chains."""

    bridge_id: str
    from_chain: int
    to_chain: int
    from_token: str
    to_token: str
    amount_in: Decimal
    amount_out: Decimal
    bridge_fee: Decimal  # in units of the bridged token
    gas_usd: Decimal
    total_fee_usd: Decimal
    estimated_time: int
    min_amount_out: Decimal
    slippage: float
    expires_at: float
    estimated: bool = False

    def to_dict(self) -> dict:
        return {
            "bridgeId": self.bridge_id,
            "fromChain": self.from_chain,
            "toChain": self.to_chain,
            "fromToken": self.from_token,
            "toToken": self.to_token,
            "amountIn": str(self.amount_in),
            "amountOut": str(self.amount_out),
            "fees": {
                "bridge": str(self.bridge_fee),
                "gasUSD": str(self.gas_usd),
                "totalUSD": str(self.total_fee_usd),
            },
            "estimatedTime": self.estimated_time,
            "minAmountOut": str(self.min_amount_out),
            "slippage": self.slippage,
            "expiresAt": int(self.expires_at * 1000),
            "estimated": self.estimated,
        }


def _min_amount_out(amount_out_raw: int, slippage: float, decimals: int) -> Decimal:
    raw = amount_out_raw * (10_000 - int(round(slippage * 100))) // 10_000
    return Decimal(AmountTransformer.from_raw_int(raw, decimals))


class BridgeAdapter(ABC):
    """Abstract base class for bridges."""

    provider_key = ""

    def __init__(self, tokens: Optional[TokenRegistry] = None, chains: Optional[ChainRegistry] = None):
        self.chains = chains or (tokens.chains if tokens else get_chain_registry())
        self.tokens = tokens or TokenRegistry(self.chains)
        self.chain_transformer = ChainTransformer(self.chains)

    @property
    @abstractmethod
    def name(self) -> str:
        """Bridge name identifier."""
        pass

    def get_priority(self) -> int:
        return 100

    def supports_route(self, from_chain: int, to_chain: int) -> bool:
        return (
            from_chain != to_chain
            and self.chain_transformer.is_supported(from_chain, self.provider_key)
            and self.chain_transformer.is_supported(to_chain, self.provider_key)
        )

    @abstractmethod
    async def get_quote(
        self,
        from_chain: int,
        to_chain: int,
        from_token: str,
        to_token: str,
        amount: Decimal,
        slippage: float = 0.5,
    ) -> Optional[BridgeQuote]:
        """Quote a transfer of ``amount`` (human-readable units)."""
        pass


class StargateBridge(BridgeAdapter):
    """Stargate pools, priced from the protocol's flat fee model.

    Amounts are computed locally, so every quote is flagged as estimated.
    """

    provider_key = "stargate"

    FEE_BPS = 6
    ESTIMATED_TIME_SECONDS = 300
    SUPPORTED_SYMBOLS = {"USDC", "USDT", "WETH", "ETH"}

    def __init__(self, gas: Optional[GasEstimator] = None, **kwargs):
        super().__init__(**kwargs)
        self.gas = gas or GasEstimator(chains=self.chains)

    @property
    def name(self) -> str:
        return "Stargate"

    def get_priority(self) -> int:
        return 10

    async def get_quote(
        self,
        from_chain: int,
        to_chain: int,
        from_token: str,
        to_token: str,
        amount: Decimal,
        slippage: float = 0.5,
    ) -> Optional[BridgeQuote]:
        if not self.supports_route(from_chain, to_chain):
            return None
        from_info = self.tokens.lookup(from_chain, from_token)
        to_info = self.tokens.lookup(to_chain, to_token)
        if not from_info or not to_info:
            return None
        if from_info.symbol not in self.SUPPORTED_SYMBOLS or to_info.symbol not in self.SUPPORTED_SYMBOLS:
            return None

        amount_in_raw = AmountTransformer.to_raw_int(AmountTransformer.normalize(amount), from_info.decimals)
        fee_raw = amount_in_raw * self.FEE_BPS // 10_000
        out_raw = self._rescale(amount_in_raw - fee_raw, from_info.decimals, to_info.decimals)
        if out_raw <= 0:
            return None

        gas = await self.gas.estimate(from_chain, hops=2)
        bridge_fee = Decimal(AmountTransformer.from_raw_int(fee_raw, from_info.decimals))
        return BridgeQuote(
            bridge_id="stargate",
            from_chain=from_chain,
            to_chain=to_chain,
            from_token=from_token,
            to_token=to_token,
            amount_in=amount,
            amount_out=Decimal(AmountTransformer.from_raw_int(out_raw, to_info.decimals)),
            bridge_fee=bridge_fee,
            gas_usd=gas.gas_usd,
            total_fee_usd=gas.gas_usd + (bridge_fee if from_info.symbol in ("USDC", "USDT") else Decimal(0)),
            estimated_time=self.ESTIMATED_TIME_SECONDS,
            min_amount_out=_min_amount_out(out_raw, slippage, to_info.decimals),
            slippage=slippage,
            expires_at=time.time() + BRIDGE_QUOTE_TTL_SECONDS,
            estimated=True,
        )

    @staticmethod
    def _rescale(raw: int, from_decimals: int, to_decimals: int) -> int:
        if to_decimals >= from_decimals:
            return raw * 10 ** (to_decimals - from_decimals)
        return raw // 10 ** (from_decimals - to_decimals)


class SocketBridge(BridgeAdapter):
    """Socket (Bungee) bridge aggregator.

    API docs: https://docs.socket.tech/socket-api/v2/quote
    """

    provider_key = "socket"

    SOCKET_API = "https://api.socket.tech/v2"
    QUOTE_PLACEHOLDER_USER = "0x000000000000000000000000000000000000dEaD"

    def __init__(
        self,
        api_key: str = "",
        timeout: float = 8.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return "Socket"

    def get_priority(self) -> int:
        return 20

    async def get_quote(
        self,
        from_chain: int,
        to_chain: int,
        from_token: str,
        to_token: str,
        amount: Decimal,
        slippage: float = 0.5,
    ) -> Optional[BridgeQuote]:
        if not self.supports_route(from_chain, to_chain):
            return None
        from_decimals = await self.tokens.get_decimals(from_chain, from_token)
        to_decimals = await self.tokens.get_decimals(to_chain, to_token)
        amount_raw = AmountTransformer.to_smallest_unit(AmountTransformer.normalize(amount), from_decimals)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(
                    f"{self.SOCKET_API}/quote",
                    headers={"API-KEY": self.api_key, "Accept": "application/json"},
                    params={
                        "fromChainId": str(self.chain_transformer.to_provider(from_chain, self.provider_key)),
                        "toChainId": str(self.chain_transformer.to_provider(to_chain, self.provider_key)),
                        "fromTokenAddress": from_token,
                        "toTokenAddress": to_token,
                        "fromAmount": amount_raw,
                        "userAddress": self.QUOTE_PLACEHOLDER_USER,
                        "uniqueRoutesPerBridge": "true",
                        "sort": "output",
                        "singleTxOnly": "true",
                    },
                )
        except httpx.HTTPError as e:
            raise ProviderUnavailable(self.name, f"{type(e).__name__}: {e}") from e

        if response.status_code != 200:
            raise ProviderUnavailable(self.name, f"API error {response.status_code}")

        routes = ((response.json().get("result") or {}).get("routes")) or []
        if not routes:
            return None

        best = max(routes, key=lambda r: int(r.get("toAmount") or 0))
        out_raw = int(best.get("toAmount") or 0)
        if out_raw <= 0:
            return None

        gas_usd = Decimal(str(best.get("totalGasFeesInUsd") or "0"))
        input_value = Decimal(str(best.get("inputValueInUsd") or "0"))
        output_value = Decimal(str(best.get("outputValueInUsd") or "0"))
        fee_usd = max(input_value - output_value, Decimal(0)) if input_value else Decimal(0)
        amount_out = Decimal(AmountTransformer.from_raw_int(out_raw, to_decimals))

        return BridgeQuote(
            bridge_id="socket:" + ",".join(best.get("usedBridgeNames") or []),
            from_chain=from_chain,
            to_chain=to_chain,
            from_token=from_token,
            to_token=to_token,
            amount_in=amount,
            amount_out=amount_out,
            bridge_fee=max(amount - amount_out, Decimal(0)) if from_decimals == to_decimals else Decimal(0),
            gas_usd=gas_usd,
            total_fee_usd=gas_usd + fee_usd,
            estimated_time=int(best.get("serviceTime") or 180),
            min_amount_out=_min_amount_out(out_raw, slippage, to_decimals),
            slippage=slippage,
            expires_at=time.time() + BRIDGE_QUOTE_TTL_SECONDS,
        )

"""Minimal EVM JSON-RPC client.

Reads Uniswap V2 style factory/pair state and gas data with raw
``eth_call`` requests over httpx.
"""

import logging
import time
from typing import Optional

import httpx
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError

from crossroute.config import get_settings
from crossroute.errors import RoutingError

logger = logging.getLogger(__name__)

# Function selectors
GET_PAIR_SELECTOR = "0xe6a43905"  # getPair(address,address)
GET_RESERVES_SELECTOR = "0x0902f1ac"  # getReserves()
TOKEN0_SELECTOR = "0x0dfe1681"  # token0()
DECIMALS_SELECTOR = "0x313ce567"  # decimals()
SWAP_EXACT_TOKENS_SELECTOR = "0x38ed1739"  # swapExactTokensForTokens(...)

ZERO_ADDRESS = "0x" + "0" * 40


class RpcError(RoutingError):
    """A JSON-RPC call failed or returned an error object."""

    code = "RPC_ERROR"


def _address_bytes(address: str) -> bytes:
    return bytes.fromhex(address[2:])


def _decode(types: list[str], raw: bytes, what: str) -> tuple:
    try:
        return decode(types, raw)
    except DecodingError as e:
        raise RpcError(f"{what} returned undecodable data: {e}") from e


class ChainRpcClient:
    """JSON-RPC client shared by the pair fetcher and gas estimator."""

    def __init__(
        self,
        rpc_urls: Optional[dict[int, str]] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._rpc_urls = rpc_urls or {}
        self.timeout = timeout
        self._transport = transport
        self._request_id = 0

    def get_rpc_url(self, chain_id: int) -> str:
        return self._rpc_urls.get(chain_id) or get_settings().get_rpc_url(chain_id)

    async def call(self, chain_id: int, method: str, params: list):
        """Send one JSON-RPC request and return its ``result``."""
        rpc_url = self.get_rpc_url(chain_id)
        if not rpc_url:
            raise RpcError(f"No RPC endpoint configured for chain {chain_id}")

        self._request_id += 1
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                rpc_url,
                json={
                    "jsonrpc": "2.0",
                    "method": method,
                    "params": params,
                    "id": self._request_id,
                },
            )

        if response.status_code != 200:
            raise RpcError(f"{method} on chain {chain_id}: HTTP {response.status_code}")

        data = response.json()
        if "error" in data:
            raise RpcError(f"{method} on chain {chain_id}: {data['error'].get('message', data['error'])}")
        return data.get("result")

    async def eth_call(self, chain_id: int, to: str, data: str) -> bytes:
        result = await self.call(chain_id, "eth_call", [{"to": to, "data": data}, "latest"])
        if not result or result == "0x":
            return b""
        return bytes.fromhex(result[2:])

    async def get_pair_address(
        self, chain_id: int, factory: str, token_a: str, token_b: str
    ) -> Optional[str]:
        """Return the pair contract for two tokens, or None if the factory has none."""
        args = encode(["address", "address"], [_address_bytes(token_a), _address_bytes(token_b)])
        raw = await self.eth_call(chain_id, factory, GET_PAIR_SELECTOR + args.hex())
        if len(raw) < 32:
            return None
        (pair,) = _decode(["address"], raw[:32], "getPair")
        pair = pair.lower()
        return None if pair == ZERO_ADDRESS else pair

    async def get_reserves(self, chain_id: int, pair_address: str) -> tuple[int, int, int]:
        """Return ``(reserve0, reserve1, block_timestamp_last)``."""
        raw = await self.eth_call(chain_id, pair_address, GET_RESERVES_SELECTOR)
        if len(raw) < 96:
            raise RpcError(f"getReserves returned no data for {pair_address}")
        reserve0, reserve1, block_ts = _decode(["uint112", "uint112", "uint32"], raw[:96], "getReserves")
        return reserve0, reserve1, block_ts

    async def get_token0(self, chain_id: int, pair_address: str) -> str:
        raw = await self.eth_call(chain_id, pair_address, TOKEN0_SELECTOR)
        (token0,) = _decode(["address"], raw[:32], f"token0() on {pair_address}")
        return token0.lower()

    async def get_decimals(self, chain_id: int, token: str) -> Optional[int]:
        try:
            raw = await self.eth_call(chain_id, token, DECIMALS_SELECTOR)
        except (RpcError, httpx.HTTPError) as e:
            logger.debug(f"decimals() failed for {token} on {chain_id}: {e}")
            return None
        if len(raw) < 32:
            return None
        return int.from_bytes(raw[:32], "big")

    async def get_gas_price(self, chain_id: int) -> int:
        result = await self.call(chain_id, "eth_gasPrice", [])
        return int(result, 16)

    async def estimate_gas(self, chain_id: int, tx: dict) -> int:
        result = await self.call(chain_id, "eth_estimateGas", [tx])
        return int(result, 16)


def encode_swap_exact_tokens(
    amount_in: int,
    amount_out_min: int,
    path: list[str],
    recipient: str,
    deadline_seconds: int = 1200,
) -> str:
    """Encode swapExactTokensForTokens calldata for a V2 router."""
    args = encode(
        ["uint256", "uint256", "address[]", "address", "uint256"],
        [
            amount_in,
            amount_out_min,
            [_address_bytes(a) for a in path],
            _address_bytes(recipient),
            int(time.time()) + deadline_seconds,
        ],
    )
    return SWAP_EXACT_TOKENS_SELECTOR + args.hex()

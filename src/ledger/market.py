"""
MarketGateway: typed entry points of the market and oracle contracts.

Reads return decoded records or raise ledger errors; writes return
ExecutionResult. The gateway holds no state besides the contract ids.
"""

from __future__ import annotations

from ledger.client import LedgerClient, address, i128, symbol, u64
from ledger.codec import decode_id_list, decode_order, decode_position, to_int
from ledger.contracts import ExecutionResult, Order, Position
from ledger.errors import ParseError


class MarketGateway:
    def __init__(
        self,
        client: LedgerClient,
        market_contract_id: str,
        oracle_contract_id: str = "",
    ) -> None:
        self._client = client
        self._market = market_contract_id
        self._oracle = oracle_contract_id

    @property
    def keeper_address(self) -> str:
        return self._client.public_key

    @property
    def has_oracle(self) -> bool:
        return bool(self._oracle)

    # ---------- positions ----------

    def get_all_position_ids(self) -> list[int]:
        raw = self._client.read_call(self._market, "get_all_position_ids")
        return decode_id_list(raw, "get_all_position_ids")

    def get_position(self, position_id: int) -> Position | None:
        """Fetch a position. None when the contract returns no value."""
        raw = self._client.read_call(self._market, "get_position", [u64(position_id)])
        return decode_position(raw) if raw else None

    def is_liquidatable(self, position_id: int) -> bool:
        return bool(self._client.read_call(self._market, "is_liquidatable", [u64(position_id)]))

    def liquidate(self, position_id: int) -> ExecutionResult:
        return self._client.write_call(
            self._market, "liquidate", [address(self.keeper_address), u64(position_id)]
        )

    # ---------- orders ----------

    def get_all_order_ids(self) -> list[int]:
        raw = self._client.read_call(self._market, "get_all_order_ids")
        return decode_id_list(raw, "get_all_order_ids")

    def get_order(self, order_id: int) -> Order | None:
        raw = self._client.read_call(self._market, "get_order", [u64(order_id)])
        return decode_order(raw) if raw else None

    def should_execute_order(self, order_id: int) -> bool:
        return bool(self._client.read_call(self._market, "should_execute_order", [u64(order_id)]))

    def execute_order(self, order_id: int) -> ExecutionResult:
        return self._client.write_call(
            self._market, "execute_order", [address(self.keeper_address), u64(order_id)]
        )

    # ---------- funding ----------

    def apply_funding(self) -> ExecutionResult:
        return self._client.write_call(self._market, "apply_funding")

    # ---------- oracle ----------

    def set_price(self, asset: str, price_scaled: int) -> ExecutionResult:
        if not self._oracle:
            return ExecutionResult.failed("No oracle contract configured")
        return self._client.write_call(self._oracle, "set_price", [symbol(asset), i128(price_scaled)])

    def last_price(self, asset: str) -> tuple[int, int]:
        """Oracle (price, timestamp) for *asset*."""
        if not self._oracle:
            raise ValueError("No oracle contract configured")
        raw = self._client.read_call(self._oracle, "lastprice", [symbol(asset)])
        if not isinstance(raw, (list, tuple)) or len(raw) != 2:
            raise ParseError(f"lastprice({asset}): expected (price, timestamp), got {raw!r}")
        return to_int(raw[0], "price"), to_int(raw[1], "timestamp")

"""Tests for MarketGateway: entry point names, argument shapes, decoding."""

import pytest

from conftest import KEEPER, MARKET, ORACLE, FakeLedger
from ledger.client import ScArg
from ledger.contracts import Direction
from ledger.errors import ParseError
from ledger.market import MarketGateway


class RecordingClient(FakeLedger):
    """Keeps the typed arguments so argument shapes can be checked."""

    def __init__(self) -> None:
        super().__init__()
        self.raw_writes: list[tuple[str, str, list[ScArg]]] = []

    def write_call(self, contract_id, method, args=()):
        self.raw_writes.append((contract_id, method, list(args)))
        return super().write_call(contract_id, method, args)


def test_keeper_address(market: MarketGateway) -> None:
    assert market.keeper_address == KEEPER
    assert market.has_oracle


def test_liquidate_args() -> None:
    client = RecordingClient()
    client.add_position(4, liquidatable=True)
    MarketGateway(client, MARKET).liquidate(4)
    contract, method, args = client.raw_writes[0]
    assert (contract, method) == (MARKET, "liquidate")
    assert args == [ScArg("address", KEEPER), ScArg("u64", 4)]


def test_execute_order_args() -> None:
    client = RecordingClient()
    MarketGateway(client, MARKET).execute_order(9)
    assert client.raw_writes[0][2] == [ScArg("address", KEEPER), ScArg("u64", 9)]


def test_apply_funding_has_no_args() -> None:
    client = RecordingClient()
    MarketGateway(client, MARKET).apply_funding()
    assert client.raw_writes == [(MARKET, "apply_funding", [])]


def test_set_price_targets_oracle() -> None:
    client = RecordingClient()
    result = MarketGateway(client, MARKET, ORACLE).set_price("XLM", 1_234_567)
    assert result.success
    assert client.raw_writes == [(ORACLE, "set_price", [ScArg("symbol", "XLM"), ScArg("i128", 1_234_567)])]


def test_set_price_without_oracle(ledger: FakeLedger) -> None:
    result = MarketGateway(ledger, MARKET).set_price("XLM", 1)
    assert not result.success
    assert ledger.writes == []


def test_get_position_decodes(ledger: FakeLedger, market: MarketGateway) -> None:
    ledger.add_position(2, direction=1)
    position = market.get_position(2)
    assert position.id == 2
    assert position.direction is Direction.SHORT


def test_id_lists(ledger: FakeLedger, market: MarketGateway) -> None:
    ledger.add_position(3)
    ledger.add_position(1)
    ledger.add_order(8)
    assert market.get_all_position_ids() == [1, 3]
    assert market.get_all_order_ids() == [8]


def test_last_price(market: MarketGateway) -> None:
    assert market.last_price("XLM") == (1_234_567, 1_700_000_000)


def test_last_price_bad_shape(ledger: FakeLedger, market: MarketGateway, monkeypatch: pytest.MonkeyPatch) -> None:
    original = ledger.read_call

    def read(contract_id, method, args=()):
        if method == "lastprice":
            return None
        return original(contract_id, method, args)

    monkeypatch.setattr(ledger, "read_call", read)
    with pytest.raises(ParseError):
        market.last_price("XLM")

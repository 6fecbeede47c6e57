from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional

import pytest

from weighted_pool_indexer.datalake.schemas import Balancer, CallResult, Token
from weighted_pool_indexer.datalake.storage import InMemoryEntityStore
from weighted_pool_indexer.ingestion.token_registry import TokenRegistry, decode_bytes32
from weighted_pool_indexer.monitoring.metrics import METRICS

TOKEN_A = "0x00000000000000000000000000000000000000aa"
TOKEN_B = "0x00000000000000000000000000000000000000bb"
FACTORY = "0x9424b1412450d0f8fc2255faf6046b98213b76bd"


class FakeERC20Caller:
    """Answers from dictionaries; a missing key behaves like a reverted call."""

    def __init__(
        self,
        symbols: Optional[Dict[str, str]] = None,
        names: Optional[Dict[str, str]] = None,
        decimals: Optional[Dict[str, int]] = None,
        supplies: Optional[Dict[str, int]] = None,
        symbols_bytes32: Optional[Dict[str, bytes]] = None,
        names_bytes32: Optional[Dict[str, bytes]] = None,
    ) -> None:
        self._symbols = symbols or {}
        self._names = names or {}
        self._decimals = decimals or {}
        self._supplies = supplies or {}
        self._symbols_bytes32 = symbols_bytes32 or {}
        self._names_bytes32 = names_bytes32 or {}
        self.calls: List[str] = []

    def _lookup(self, table: Dict, address: str, label: str) -> CallResult:
        self.calls.append(f"{label}:{address}")
        if address in table:
            return CallResult.ok(table[address])
        return CallResult.revert()

    def try_symbol(self, address: str) -> CallResult[str]:
        return self._lookup(self._symbols, address, "symbol")

    def try_name(self, address: str) -> CallResult[str]:
        return self._lookup(self._names, address, "name")

    def try_decimals(self, address: str) -> CallResult[int]:
        return self._lookup(self._decimals, address, "decimals")

    def try_total_supply(self, address: str) -> CallResult[int]:
        return self._lookup(self._supplies, address, "totalSupply")

    def try_symbol_bytes32(self, address: str) -> CallResult[bytes]:
        return self._lookup(self._symbols_bytes32, address, "symbol_bytes32")

    def try_name_bytes32(self, address: str) -> CallResult[bytes]:
        return self._lookup(self._names_bytes32, address, "name_bytes32")


def _registry(caller: FakeERC20Caller) -> tuple[TokenRegistry, InMemoryEntityStore]:
    store = InMemoryEntityStore()
    factory = Balancer(id=FACTORY)
    store.save(factory)
    return TokenRegistry(store, caller, factory), store


def test_get_or_create_token_is_idempotent() -> None:
    caller = FakeERC20Caller(
        symbols={TOKEN_A: "BAL"},
        names={TOKEN_A: "Balancer"},
        decimals={TOKEN_A: 18},
    )
    registry, store = _registry(caller)

    first = registry.get_or_create_token(TOKEN_A)
    second = registry.get_or_create_token(TOKEN_A)

    assert first == second
    assert first.symbol == "BAL"
    assert first.name == "Balancer"
    assert first.decimals == 18
    assert first.total_liquidity == Decimal(0)
    assert first.tx_count == 0 and first.swap_tx_count == 0
    assert first.balancer == FACTORY
    assert len(store.list_entities(Token)) == 1
    # metadata is read once, on creation
    assert caller.calls.count(f"symbol:{TOKEN_A}") == 1


def test_get_or_create_token_normalizes_address_case() -> None:
    registry, store = _registry(FakeERC20Caller(symbols={TOKEN_A: "BAL"}))

    token = registry.get_or_create_token(TOKEN_A.upper().replace("0X", "0x"))

    assert token.id == TOKEN_A
    assert store.load(Token, TOKEN_A) is not None


def test_metadata_falls_back_to_bytes32_variants() -> None:
    caller = FakeERC20Caller(
        decimals={TOKEN_A: 18},
        symbols_bytes32={TOKEN_A: b"MKR".ljust(32, b"\x00")},
        names_bytes32={TOKEN_A: b"Maker".ljust(32, b"\x00")},
    )
    registry, _ = _registry(caller)

    metadata = registry.resolve_token_metadata(TOKEN_A)

    assert metadata.symbol == "MKR"
    assert metadata.name == "Maker"
    assert metadata.decimals == 18


def test_metadata_defaults_when_every_call_reverts() -> None:
    METRICS.reset()
    registry, _ = _registry(FakeERC20Caller())

    metadata = registry.resolve_token_metadata(TOKEN_A)

    assert metadata.symbol == ""
    assert metadata.name == ""
    assert metadata.decimals == 18
    assert metadata.total_supply is None
    assert METRICS.get("metadata.fallback.symbol") == 1
    assert METRICS.get("metadata.default.decimals") == 1


def test_direct_metadata_is_preferred_over_bytes32() -> None:
    caller = FakeERC20Caller(
        symbols={TOKEN_A: "USDC"},
        names={TOKEN_A: "USD Coin"},
        decimals={TOKEN_A: 6},
        supplies={TOKEN_A: 10**24},
        symbols_bytes32={TOKEN_A: b"WRONG"},
    )
    registry, _ = _registry(caller)

    metadata = registry.resolve_token_metadata(TOKEN_A)

    assert (metadata.symbol, metadata.name, metadata.decimals) == ("USDC", "USD Coin", 6)
    assert metadata.total_supply == 10**24
    assert f"symbol_bytes32:{TOKEN_A}" not in caller.calls


def test_ensure_tokens_exist_skips_duplicates_and_nulls() -> None:
    registry, store = _registry(FakeERC20Caller(symbols={TOKEN_A: "AAA", TOKEN_B: "BBB"}))

    registry.ensure_tokens_exist([TOKEN_A, TOKEN_A, TOKEN_B, None, ""])

    tokens = {token.id: token for token in store.list_entities(Token)}
    assert set(tokens) == {TOKEN_A, TOKEN_B}
    assert tokens[TOKEN_B].symbol == "BBB"


@pytest.mark.parametrize("addresses", [None, []])
def test_ensure_tokens_exist_accepts_empty_input(addresses) -> None:
    registry, store = _registry(FakeERC20Caller())

    registry.ensure_tokens_exist(addresses)

    assert store.list_entities(Token) == []


def test_ensure_tokens_exist_does_not_refresh_existing_tokens() -> None:
    registry, store = _registry(FakeERC20Caller(symbols={TOKEN_A: "NEW"}))
    existing = Token(id=TOKEN_A, balancer=FACTORY, symbol="OLD", tx_count=7)
    store.save(existing)

    registry.ensure_tokens_exist([TOKEN_A])

    assert store.load(Token, TOKEN_A) == existing


def test_decode_bytes32_strips_padding() -> None:
    assert decode_bytes32(b"SAI" + b"\x00" * 29) == "SAI"
    assert decode_bytes32(b"\x00" * 32) == ""

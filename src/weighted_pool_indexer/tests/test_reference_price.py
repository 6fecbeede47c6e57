from __future__ import annotations

from decimal import Decimal
from typing import Sequence

import pytest

from weighted_pool_indexer.datalake.schemas import Pool, PoolToken, TokenPrice
from weighted_pool_indexer.datalake.storage import InMemoryEntityStore
from weighted_pool_indexer.errors import MissingEntityError
from weighted_pool_indexer.pricing import ReferencePriceResolver, pool_token_id
from weighted_pool_indexer.utils.constants import DAI_ADDRESS, WETH_ADDRESS

TOKEN_X = "0x00000000000000000000000000000000000000aa"
TOKEN_Y = "0x00000000000000000000000000000000000000bb"
POOL_A = "0x000000000000000000000000000000000000a000"
POOL_B = "0x000000000000000000000000000000000000b000"


def _add_pool(
    store: InMemoryEntityStore,
    pool_id: str,
    tokens: Sequence[tuple[str, str, str]],
    total_weight: str = "50",
) -> Pool:
    """``tokens`` holds (address, balance, denorm weight) triples."""

    pool = Pool(
        id=pool_id,
        tokens_list=[address for address, _, _ in tokens],
        tokens_count=len(tokens),
        total_weight=Decimal(total_weight),
    )
    store.save(pool)
    for address, balance, weight in tokens:
        store.save(
            PoolToken(
                id=pool_token_id(pool_id, address),
                pool_id=pool_id,
                address=address,
                balance=Decimal(balance),
                denorm_weight=Decimal(weight),
                symbol=f"SYM-{address[-2:]}",
                name=f"Token {address[-2:]}",
                decimals=18,
            )
        )
    return pool


def _resolver(store: InMemoryEntityStore) -> ReferencePriceResolver:
    return ReferencePriceResolver(store, [WETH_ADDRESS, DAI_ADDRESS])


def test_price_uses_weighted_share_of_pool_liquidity() -> None:
    store = InMemoryEntityStore()
    pool = _add_pool(store, POOL_A, [(TOKEN_X, "10", "25"), (TOKEN_Y, "500", "25")])

    _resolver(store).upsert_token_price(pool, Decimal("1000"), has_usd_price=True)

    price_x = store.load(TokenPrice, TOKEN_X)
    assert price_x.price == Decimal("50")
    assert price_x.pool_token_id == pool_token_id(POOL_A, TOKEN_X)
    assert price_x.pool_liquidity == Decimal("1000")
    assert (price_x.symbol, price_x.name, price_x.decimals) == ("SYM-aa", "Token aa", 18)
    assert store.load(TokenPrice, TOKEN_Y).price == Decimal("1")


def test_deeper_pool_keeps_the_reference() -> None:
    store = InMemoryEntityStore()
    pool_a = _add_pool(store, POOL_A, [(TOKEN_X, "10", "25"), (TOKEN_Y, "10", "25")])
    pool_b = _add_pool(store, POOL_B, [(TOKEN_X, "20", "25"), (TOKEN_Y, "20", "25")])
    resolver = _resolver(store)

    resolver.upsert_token_price(pool_a, Decimal("1000"), has_usd_price=False)
    resolver.upsert_token_price(pool_b, Decimal("500"), has_usd_price=False)

    price_x = store.load(TokenPrice, TOKEN_X)
    assert price_x.pool_token_id == pool_token_id(POOL_A, TOKEN_X)
    assert price_x.pool_liquidity == Decimal("1000")
    assert price_x.price == Decimal("50")


def test_deeper_pool_takes_over_the_reference() -> None:
    store = InMemoryEntityStore()
    pool_a = _add_pool(store, POOL_A, [(TOKEN_X, "10", "25"), (TOKEN_Y, "10", "25")])
    pool_b = _add_pool(store, POOL_B, [(TOKEN_X, "20", "25"), (TOKEN_Y, "20", "25")])
    resolver = _resolver(store)

    resolver.upsert_token_price(pool_b, Decimal("500"), has_usd_price=False)
    changed = resolver.upsert_token_price(pool_a, Decimal("1000"), has_usd_price=False)

    assert {record.id for record in changed} == {TOKEN_X, TOKEN_Y}
    assert store.load(TokenPrice, TOKEN_X).pool_token_id == pool_token_id(POOL_A, TOKEN_X)


def test_reference_pool_updates_even_when_its_liquidity_drops() -> None:
    store = InMemoryEntityStore()
    pool_a = _add_pool(store, POOL_A, [(TOKEN_X, "10", "25"), (TOKEN_Y, "10", "25")])
    resolver = _resolver(store)

    resolver.upsert_token_price(pool_a, Decimal("1000"), has_usd_price=False)
    resolver.upsert_token_price(pool_a, Decimal("400"), has_usd_price=False)

    price_x = store.load(TokenPrice, TOKEN_X)
    assert price_x.pool_liquidity == Decimal("400")
    assert price_x.price == Decimal("20")


def test_equal_liquidity_from_another_pool_is_not_adopted() -> None:
    store = InMemoryEntityStore()
    pool_a = _add_pool(store, POOL_A, [(TOKEN_X, "10", "25"), (TOKEN_Y, "10", "25")])
    pool_b = _add_pool(store, POOL_B, [(TOKEN_X, "20", "25"), (TOKEN_Y, "20", "25")])
    resolver = _resolver(store)

    resolver.upsert_token_price(pool_a, Decimal("1000"), has_usd_price=False)
    changed = resolver.upsert_token_price(pool_b, Decimal("1000"), has_usd_price=False)

    assert changed == []
    assert store.load(TokenPrice, TOKEN_X).pool_token_id == pool_token_id(POOL_A, TOKEN_X)


def test_numeraire_ignores_multi_asset_pools() -> None:
    store = InMemoryEntityStore()
    two_asset = _add_pool(store, POOL_A, [(WETH_ADDRESS, "10", "25"), (DAI_ADDRESS, "20000", "25")])
    three_asset = _add_pool(
        store,
        POOL_B,
        [(WETH_ADDRESS, "50", "10"), (DAI_ADDRESS, "1000", "10"), (TOKEN_X, "1", "30")],
    )
    resolver = _resolver(store)

    resolver.upsert_token_price(two_asset, Decimal("40000"), has_usd_price=True)
    resolver.upsert_token_price(three_asset, Decimal("1000000"), has_usd_price=True)

    weth = store.load(TokenPrice, WETH_ADDRESS)
    assert weth.pool_token_id == pool_token_id(POOL_A, WETH_ADDRESS)
    assert weth.price == Decimal("2000")
    # ordinary tokens still follow liquidity
    assert store.load(TokenPrice, TOKEN_X).pool_token_id == pool_token_id(POOL_B, TOKEN_X)


def test_numeraire_requires_confirmed_usd_price() -> None:
    store = InMemoryEntityStore()
    pool = _add_pool(store, POOL_A, [(WETH_ADDRESS, "10", "25"), (TOKEN_X, "10", "25")])

    changed = _resolver(store).upsert_token_price(pool, Decimal("1000"), has_usd_price=False)

    assert [record.id for record in changed] == [TOKEN_X]
    weth = store.load(TokenPrice, WETH_ADDRESS)
    assert weth is None


def test_zero_balance_never_produces_a_price() -> None:
    store = InMemoryEntityStore()
    pool = _add_pool(store, POOL_A, [(TOKEN_X, "0", "25"), (TOKEN_Y, "10", "25")])

    _resolver(store).upsert_token_price(pool, Decimal("1000"), has_usd_price=False)

    price_x = store.load(TokenPrice, TOKEN_X)
    assert price_x.price == Decimal(0)
    assert price_x.pool_token_id == pool_token_id(POOL_A, TOKEN_X)


def test_zero_total_weight_leaves_price_at_zero() -> None:
    store = InMemoryEntityStore()
    pool = _add_pool(store, POOL_A, [(TOKEN_X, "10", "25")], total_weight="0")

    _resolver(store).upsert_token_price(pool, Decimal("1000"), has_usd_price=False)

    assert store.load(TokenPrice, TOKEN_X).price == Decimal(0)


def test_missing_pool_token_fails_fast() -> None:
    store = InMemoryEntityStore()
    pool = Pool(id=POOL_A, tokens_list=[TOKEN_X], tokens_count=1, total_weight=Decimal("50"))
    store.save(pool)

    with pytest.raises(MissingEntityError) as excinfo:
        _resolver(store).upsert_token_price(pool, Decimal("1000"), has_usd_price=False)

    assert excinfo.value.entity_id == pool_token_id(POOL_A, TOKEN_X)
    assert excinfo.value.event_id == "-"
    assert store.load(TokenPrice, TOKEN_X) is None


def test_missing_second_pool_token_writes_no_prices() -> None:
    store = InMemoryEntityStore()
    _add_pool(store, POOL_A, [(TOKEN_X, "10", "25")])
    pool = Pool(id=POOL_A, tokens_list=[TOKEN_X, TOKEN_Y], tokens_count=2, total_weight=Decimal("50"))
    store.save(pool)

    with pytest.raises(MissingEntityError) as excinfo:
        _resolver(store).upsert_token_price(pool, Decimal("1000"), has_usd_price=False)

    assert excinfo.value.entity_id == pool_token_id(POOL_A, TOKEN_Y)
    assert store.load(TokenPrice, TOKEN_X) is None
    assert store.list_entities(TokenPrice) == []

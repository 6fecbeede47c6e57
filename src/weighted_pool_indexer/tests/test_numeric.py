from __future__ import annotations

from decimal import Decimal

from weighted_pool_indexer.utils.addresses import normalize_address
from weighted_pool_indexer.utils.numeric import add, day_id, divide, scale_amount, to_decimal


def test_day_id_floors_to_unix_day() -> None:
    assert day_id(0) == 0
    assert day_id(86_399) == 0
    assert day_id(86_400) == 1
    assert day_id(1_600_000_000) == 18_518


def test_scale_amount_uses_token_decimals() -> None:
    assert scale_amount(1_500_000, 6) == Decimal("1.5")
    assert scale_amount(10**18, 18) == Decimal(1)
    assert scale_amount(12345, 0) == Decimal(12345)


def test_to_decimal_handles_none_and_floats() -> None:
    assert to_decimal(None) == Decimal(0)
    assert to_decimal(0.1) == Decimal("0.1")
    assert to_decimal("2.50") == Decimal("2.5")


def test_context_keeps_34_significant_digits() -> None:
    third = divide(Decimal(1), Decimal(3))

    assert len(third.as_tuple().digits) == 34
    assert add(Decimal("0.1"), Decimal("0.2")) == Decimal("0.3")


def test_normalize_address_lowercases_and_hexes_bytes() -> None:
    assert normalize_address(" 0xABCdef ") == "0xabcdef"
    assert normalize_address(bytes.fromhex("00ff")) == "0x00ff"

"""Entity and event models shared by the registry, accumulators and storage."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Generic, List, Optional, TypeVar

from ..utils.numeric import ZERO_BD, ZERO_BI

T = TypeVar("T")


@dataclass(slots=True)
class Balancer:
    """Protocol factory singleton every token links back to."""

    id: str
    pool_count: int = ZERO_BI
    tx_count: int = ZERO_BI
    total_liquidity: Decimal = ZERO_BD
    total_swap_volume: Decimal = ZERO_BD


@dataclass(slots=True)
class Token:
    """An ERC20 token seen in at least one pool."""

    id: str
    balancer: str
    symbol: str = ""
    name: str = ""
    decimals: int = 18
    total_liquidity: Decimal = ZERO_BD
    tx_count: int = ZERO_BI
    swap_tx_count: int = ZERO_BI


@dataclass(slots=True)
class TokenPrice:
    """Current USD price of a token and the pool it is derived from."""

    id: str
    price: Decimal = ZERO_BD
    symbol: str = ""
    name: str = ""
    decimals: int = 18
    pool_token_id: str = ""
    pool_liquidity: Decimal = ZERO_BD


@dataclass(slots=True)
class Pool:
    """Weighted pool as maintained by the pool-management mappings."""

    id: str
    tokens_list: List[str] = field(default_factory=list)
    tokens_count: int = ZERO_BI
    total_weight: Decimal = ZERO_BD
    liquidity: Decimal = ZERO_BD
    swap_fee: Decimal = ZERO_BD
    swaps_count: int = ZERO_BI
    tx_count: int = ZERO_BI
    total_swap_volume: Decimal = ZERO_BD
    finalized: bool = False
    public_swap: bool = False


@dataclass(slots=True)
class PoolToken:
    """Balance and weight of one token inside one pool."""

    id: str
    pool_id: str
    address: str
    balance: Decimal = ZERO_BD
    denorm_weight: Decimal = ZERO_BD
    symbol: str = ""
    name: str = ""
    decimals: int = 18


@dataclass(slots=True)
class DailyTokenStatistics:
    """Per token, per calendar day aggregate."""

    id: str
    date: int
    token: str
    swap_volume_in_usd: Decimal = ZERO_BD
    swap_volume_in_units: Decimal = ZERO_BD
    swap_tx_count: int = ZERO_BI
    liquidity_in_units: Optional[Decimal] = ZERO_BD
    liquidity_in_usd: Optional[Decimal] = ZERO_BD
    tx_count: int = ZERO_BI


@dataclass(frozen=True, slots=True)
class DailyStatisticsDelta:
    """Sparse increments for a day bucket; ``None`` leaves a field untouched."""

    increase_swap_tx_count_by: Optional[int] = None
    increase_swap_volume_in_usd_by: Optional[Decimal] = None
    increase_swap_volume_in_units_by: Optional[Decimal] = None
    increase_liquidity_in_units_by: Optional[Decimal] = None
    increase_liquidity_in_usd_by: Optional[Decimal] = None
    increase_tx_count_by: Optional[int] = None


@dataclass(frozen=True, slots=True)
class TokenMetadata:
    """Best-effort ERC20 metadata read from the token contract."""

    name: str = ""
    symbol: str = ""
    decimals: int = 18
    total_supply: Optional[int] = None


@dataclass(frozen=True, slots=True)
class CallResult(Generic[T]):
    """Outcome of a contract call: either a value or a revert."""

    value: Optional[T] = None
    reverted: bool = False

    @classmethod
    def ok(cls, value: T) -> "CallResult[T]":
        return cls(value=value, reverted=False)

    @classmethod
    def revert(cls) -> "CallResult[T]":
        return cls(value=None, reverted=True)


@dataclass(frozen=True, slots=True)
class PoolEvent:
    """Fields common to every pool log delivered by the runtime."""

    pool_id: str
    block_timestamp: int
    tx_hash: str
    log_index: int
    caller: str
    # USD value of the pool after the event, computed by the pool mappings.
    pool_liquidity: Decimal = ZERO_BD
    has_usd_price: bool = False

    @property
    def event_id(self) -> str:
        return f"{self.tx_hash}-{self.log_index}"


@dataclass(frozen=True, slots=True)
class SwapEvent(PoolEvent):
    token_in: str = ""
    token_out: str = ""
    token_amount_in: int = 0
    token_amount_out: int = 0
    volume_usd: Decimal = ZERO_BD


@dataclass(frozen=True, slots=True)
class JoinEvent(PoolEvent):
    token_amounts_in: tuple[tuple[str, int], ...] = ()


@dataclass(frozen=True, slots=True)
class ExitEvent(PoolEvent):
    token_amounts_out: tuple[tuple[str, int], ...] = ()


__all__ = [
    "Balancer",
    "CallResult",
    "DailyStatisticsDelta",
    "DailyTokenStatistics",
    "ExitEvent",
    "JoinEvent",
    "Pool",
    "PoolEvent",
    "PoolToken",
    "SwapEvent",
    "Token",
    "TokenMetadata",
    "TokenPrice",
]

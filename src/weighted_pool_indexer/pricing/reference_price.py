"""Reference price resolution: each token is priced from its deepest pool."""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List, Tuple

from ..datalake.schemas import Pool, PoolToken, TokenPrice
from ..datalake.storage import EntityStore
from ..errors import MissingEntityError
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from ..utils.addresses import normalize_address
from ..utils.numeric import ZERO_BD, divide, multiply, to_decimal


def pool_token_id(pool_id: str, token_address: str) -> str:
    return f"{pool_id}-{token_address}"


def weighted_unit_price(pool_liquidity: Decimal, pool: Pool, pool_token: PoolToken) -> Decimal:
    """USD value of one unit of ``pool_token`` implied by its weighted share of the pool."""

    if pool_token.balance <= ZERO_BD or pool.total_weight <= ZERO_BD:
        return ZERO_BD
    share = multiply(divide(pool_liquidity, pool.total_weight), pool_token.denorm_weight)
    return divide(share, pool_token.balance)


class ReferencePriceResolver:
    """Keeps TokenPrice pointed at the most liquid pool each token trades in.

    WETH and DAI are the numeraires other prices are quoted through, so they
    only take a price from two-token pools that already carry a USD price.
    """

    def __init__(self, store: EntityStore, numeraires: Iterable[str]) -> None:
        self._store = store
        self._numeraires = frozenset(normalize_address(address) for address in numeraires)
        self._logger = get_logger(__name__)

    @property
    def numeraires(self) -> frozenset[str]:
        return self._numeraires

    def should_adopt(
        self,
        token_price: TokenPrice,
        candidate_id: str,
        pool: Pool,
        pool_liquidity: Decimal,
        has_usd_price: bool,
    ) -> bool:
        deeper_or_same = token_price.pool_token_id == candidate_id or pool_liquidity > token_price.pool_liquidity
        if not deeper_or_same:
            return False
        if token_price.id not in self._numeraires:
            return True
        return pool.tokens_count == 2 and has_usd_price

    def _load_pool_tokens(self, pool: Pool) -> List[Tuple[str, str, PoolToken]]:
        # Every PoolToken must exist before any TokenPrice of the pool is written.
        loaded: List[Tuple[str, str, PoolToken]] = []
        for raw_address in pool.tokens_list:
            address = normalize_address(raw_address)
            candidate_id = pool_token_id(pool.id, address)
            pool_token = self._store.load(PoolToken, candidate_id)
            if pool_token is None:
                raise MissingEntityError("PoolToken", candidate_id, context=f"pricing pool {pool.id}")
            loaded.append((address, candidate_id, pool_token))
        return loaded

    def upsert_token_price(self, pool: Pool, pool_liquidity: Decimal, has_usd_price: bool) -> List[TokenPrice]:
        """Re-evaluate the price of every token in ``pool``; returns the records that changed."""

        pool_liquidity = to_decimal(pool_liquidity)
        pool_tokens = self._load_pool_tokens(pool)
        adopted: List[TokenPrice] = []
        for address, candidate_id, pool_token in pool_tokens:
            token_price = self._store.load(TokenPrice, address)
            if token_price is None:
                token_price = TokenPrice(id=address, pool_token_id="", pool_liquidity=ZERO_BD)

            if not self.should_adopt(token_price, candidate_id, pool, pool_liquidity, has_usd_price):
                continue

            if token_price.pool_token_id != candidate_id:
                self._logger.info(
                    "Price source for %s moved to %s",
                    address,
                    candidate_id,
                    extra={"previous": token_price.pool_token_id, "pool_liquidity": str(pool_liquidity)},
                )
                METRICS.increment("prices.source_changed")

            token_price.price = weighted_unit_price(pool_liquidity, pool, pool_token)
            token_price.symbol = pool_token.symbol
            token_price.name = pool_token.name
            token_price.decimals = pool_token.decimals
            token_price.pool_liquidity = pool_liquidity
            token_price.pool_token_id = candidate_id
            self._store.save(token_price)
            METRICS.increment("prices.adopted")
            adopted.append(token_price)
        return adopted


__all__ = ["ReferencePriceResolver", "pool_token_id", "weighted_unit_price"]

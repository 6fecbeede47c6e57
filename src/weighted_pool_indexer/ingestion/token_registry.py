"""Token registry: ERC20 metadata resolution and lazy Token creation."""

from __future__ import annotations

from typing import Callable, Iterable, Optional

from ..datalake.schemas import Balancer, CallResult, Token, TokenMetadata
from ..datalake.storage import EntityStore
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from ..utils.addresses import normalize_address
from ..utils.constants import DEFAULT_TOKEN_DECIMALS
from ..utils.numeric import ZERO_BD, ZERO_BI
from .contracts import ERC20Caller


def decode_bytes32(value: bytes) -> str:
    """Decode a NUL padded bytes32 string."""

    return bytes(value).rstrip(b"\x00").decode("utf-8", errors="replace")


class TokenRegistry:
    """Creates Token entities on first sight, linked to the protocol factory."""

    def __init__(self, store: EntityStore, caller: ERC20Caller, factory: Balancer) -> None:
        self._store = store
        self._caller = caller
        self._factory_id = factory.id
        self._logger = get_logger(__name__)

    @property
    def factory_id(self) -> str:
        return self._factory_id

    def resolve_token_metadata(self, address: str) -> TokenMetadata:
        """Best-effort metadata; reverted calls degrade to defaults instead of raising."""

        address = normalize_address(address)
        symbol = self._resolve_text(address, "symbol", self._caller.try_symbol, self._caller.try_symbol_bytes32)
        name = self._resolve_text(address, "name", self._caller.try_name, self._caller.try_name_bytes32)

        decimals = DEFAULT_TOKEN_DECIMALS
        decimals_call = self._caller.try_decimals(address)
        if not decimals_call.reverted and decimals_call.value is not None:
            decimals = int(decimals_call.value)
        else:
            METRICS.increment("metadata.default.decimals")

        total_supply: Optional[int] = None
        supply_call = self._caller.try_total_supply(address)
        if not supply_call.reverted:
            total_supply = supply_call.value

        return TokenMetadata(name=name, symbol=symbol, decimals=decimals, total_supply=total_supply)

    def _resolve_text(
        self,
        address: str,
        field: str,
        direct: Callable[[str], CallResult[str]],
        fallback: Callable[[str], CallResult[bytes]],
    ) -> str:
        call: CallResult[str] = direct(address)
        if not call.reverted:
            return call.value or ""
        METRICS.increment(f"metadata.fallback.{field}")
        bytes_call: CallResult[bytes] = fallback(address)
        if bytes_call.reverted or bytes_call.value is None:
            self._logger.debug("No %s available for token %s", field, address)
            return ""
        return decode_bytes32(bytes_call.value)

    def _new_token(self, address: str) -> Token:
        metadata = self.resolve_token_metadata(address)
        token = Token(
            id=address,
            balancer=self._factory_id,
            symbol=metadata.symbol,
            name=metadata.name,
            decimals=metadata.decimals,
            total_liquidity=ZERO_BD,
            tx_count=ZERO_BI,
            swap_tx_count=ZERO_BI,
        )
        self._store.save(token)
        METRICS.increment("tokens.created")
        self._logger.info(
            "Registered token %s",
            address,
            extra={"symbol": token.symbol, "decimals": token.decimals},
        )
        return token

    def get_or_create_token(self, address: str) -> Token:
        address = normalize_address(address)
        token = self._store.load(Token, address)
        if token is None:
            token = self._new_token(address)
        return token

    def ensure_tokens_exist(self, addresses: Optional[Iterable[Optional[str]]]) -> None:
        """Create missing tokens for ``addresses``; existing records are left untouched."""

        if not addresses:
            return
        for raw_address in addresses:
            if not raw_address:
                continue
            address = normalize_address(raw_address)
            if self._store.load(Token, address) is None:
                self._new_token(address)


__all__ = ["TokenRegistry", "decode_bytes32", "normalize_address"]

"""ERC20 contract reads reported as tagged call results instead of exceptions."""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional, Protocol, Tuple

import requests
from cachetools import LRUCache
from tenacity import RetryError, retry, retry_if_exception_type, stop_after_attempt, wait_exponential
from web3 import Web3
from web3.exceptions import Web3Exception

from ..config.settings import ChainConfig, get_app_config
from ..datalake.schemas import CallResult
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS

ERC20_ABI: List[Dict[str, Any]] = [
    {"constant": True, "inputs": [], "name": "name", "outputs": [{"name": "", "type": "string"}],
     "stateMutability": "view", "type": "function"},
    {"constant": True, "inputs": [], "name": "symbol", "outputs": [{"name": "", "type": "string"}],
     "stateMutability": "view", "type": "function"},
    {"constant": True, "inputs": [], "name": "decimals", "outputs": [{"name": "", "type": "uint8"}],
     "stateMutability": "view", "type": "function"},
    {"constant": True, "inputs": [], "name": "totalSupply", "outputs": [{"name": "", "type": "uint256"}],
     "stateMutability": "view", "type": "function"},
]

# Tokens such as MKR and SAI predate the string ABI and return bytes32.
ERC20_BYTES32_ABI: List[Dict[str, Any]] = [
    {"constant": True, "inputs": [], "name": "name", "outputs": [{"name": "", "type": "bytes32"}],
     "stateMutability": "view", "type": "function"},
    {"constant": True, "inputs": [], "name": "symbol", "outputs": [{"name": "", "type": "bytes32"}],
     "stateMutability": "view", "type": "function"},
]

# Covers refused connections, timeouts and HTTP error statuses from the RPC node.
_TRANSPORT_ERRORS = (requests.RequestException,)


class ERC20Caller(Protocol):
    """Possibly-reverting reads against a token contract."""

    def try_symbol(self, address: str) -> CallResult[str]:
        ...

    def try_name(self, address: str) -> CallResult[str]:
        ...

    def try_decimals(self, address: str) -> CallResult[int]:
        ...

    def try_total_supply(self, address: str) -> CallResult[int]:
        ...

    def try_symbol_bytes32(self, address: str) -> CallResult[bytes]:
        ...

    def try_name_bytes32(self, address: str) -> CallResult[bytes]:
        ...


class Web3ERC20Caller:
    """``eth_call`` based ERC20 reader with endpoint fallback and retries."""

    def __init__(
        self,
        config: Optional[ChainConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config or get_app_config().chain
        self._session = session or requests.Session()
        self._logger = get_logger(__name__)
        endpoints = [str(self._config.rpc_url), *map(str, self._config.fallback_urls)]
        self._endpoints = list(dict.fromkeys(endpoints))
        self._clients = [
            Web3(
                Web3.HTTPProvider(
                    endpoint,
                    request_kwargs={"timeout": self._config.request_timeout},
                    session=self._session,
                )
            )
            for endpoint in self._endpoints
        ]
        self._cache: Optional[LRUCache[Tuple[str, str, str], Any]] = (
            LRUCache(maxsize=self._config.metadata_cache_size) if self._config.metadata_cache_size else None
        )
        self._cache_lock = threading.Lock()
        self._call_with_retry = retry(
            wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
            stop=stop_after_attempt(self._config.max_attempts),
            retry=retry_if_exception_type(_TRANSPORT_ERRORS),
        )(lambda abi, address, function_name: self._call_endpoints(abi, address, function_name))

    def _call_endpoints(self, abi: List[Dict[str, Any]], address: str, function_name: str) -> Any:
        last_exc: Optional[Exception] = None
        for endpoint, client in zip(self._endpoints, self._clients):
            contract = client.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
            try:
                return getattr(contract.functions, function_name)().call()
            except _TRANSPORT_ERRORS as exc:
                last_exc = exc
                self._logger.debug("eth_call %s failed on %s: %s", function_name, endpoint, exc)
        if last_exc is not None:
            raise last_exc
        raise RuntimeError(f"eth_call {function_name} failed for unknown reasons")

    def _try(
        self,
        abi_name: str,
        abi: List[Dict[str, Any]],
        address: str,
        function_name: str,
        cacheable: bool = True,
    ) -> CallResult[Any]:
        key = (abi_name, address.lower(), function_name)
        cache = self._cache if cacheable else None
        if cache is not None:
            with self._cache_lock:
                if key in cache:
                    return CallResult.ok(cache[key])
        try:
            value = self._call_with_retry(abi, address, function_name)
        except (Web3Exception, ValueError) as exc:
            # Contract reverted or returned data that does not decode as the ABI type.
            self._logger.debug("%s.%s reverted: %s", address, function_name, exc)
            return CallResult.revert()
        except RetryError as exc:
            METRICS.increment("contract_calls.transport_failures")
            self._logger.warning(
                "Giving up on %s.%s after %d attempts: %s",
                address,
                function_name,
                self._config.max_attempts,
                exc.last_attempt.exception(),
            )
            return CallResult.revert()
        if cache is not None:
            with self._cache_lock:
                cache[key] = value
        return CallResult.ok(value)

    def try_symbol(self, address: str) -> CallResult[str]:
        return self._try("erc20", ERC20_ABI, address, "symbol")

    def try_name(self, address: str) -> CallResult[str]:
        return self._try("erc20", ERC20_ABI, address, "name")

    def try_decimals(self, address: str) -> CallResult[int]:
        return self._try("erc20", ERC20_ABI, address, "decimals")

    def try_total_supply(self, address: str) -> CallResult[int]:
        # Supply changes block to block, so it is never served from the cache.
        return self._try("erc20", ERC20_ABI, address, "totalSupply", cacheable=False)

    def try_symbol_bytes32(self, address: str) -> CallResult[bytes]:
        return self._try("bytes32", ERC20_BYTES32_ABI, address, "symbol")

    def try_name_bytes32(self, address: str) -> CallResult[bytes]:
        return self._try("bytes32", ERC20_BYTES32_ABI, address, "name")


__all__ = ["ERC20Caller", "ERC20_ABI", "ERC20_BYTES32_ABI", "Web3ERC20Caller"]

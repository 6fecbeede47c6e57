"""Shared constants for weighted pool indexing."""

SECONDS_PER_DAY = 86_400
DEFAULT_TOKEN_DECIMALS = 18

# Mainnet numeraire tokens; other networks override them through configuration.
WETH_ADDRESS = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
DAI_ADDRESS = "0x6b175474e89094c44da98b954eedeac495271d0f"

BALANCER_FACTORY_ADDRESS = "0x9424b1412450d0f8fc2255faf6046b98213b76bd"

__all__ = [
    "SECONDS_PER_DAY",
    "DEFAULT_TOKEN_DECIMALS",
    "WETH_ADDRESS",
    "DAI_ADDRESS",
    "BALANCER_FACTORY_ADDRESS",
]

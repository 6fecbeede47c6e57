"""Pricing package exports."""

from .reference_price import ReferencePriceResolver, pool_token_id, weighted_unit_price

__all__ = ["ReferencePriceResolver", "pool_token_id", "weighted_unit_price"]

"""Pydantic schemas for external payloads."""

from .prices import PriceQuoteSchema, PriceResponseSchema

__all__ = ["PriceQuoteSchema", "PriceResponseSchema"]

"""Negotiation tunables, resolved once from settings."""

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, ROUND_FLOOR
from typing import Any

from nego_engine.config import settings

CENT = Decimal("0.01")

COUNTER_RULES = ("narrow", "no_regress")


def to_money(value: Any) -> Decimal:
    """Normalize a price to two decimal places."""
    if isinstance(value, float):
        value = repr(value)
    return Decimal(value).quantize(CENT)


@dataclass(frozen=True)
class NegotiationPolicy:
    negotiation_ttl: timedelta = timedelta(hours=168)
    floor_price_ratio: Decimal = Decimal("0.7")
    min_counter_step: Decimal = Decimal("1")
    counter_rule: str = "narrow"
    regress_tolerance: Decimal = Decimal("0")
    offer_rate_limit_per_hour: int = 10
    code_ttl: timedelta = timedelta(hours=168)
    code_prefix: str = "NEGO-"
    code_entropy_bytes: int = 12

    def __post_init__(self):
        if self.counter_rule not in COUNTER_RULES:
            raise ValueError(f"Unknown counter rule: {self.counter_rule}")
        if self.code_entropy_bytes < 10:
            raise ValueError("Discount codes need at least 80 bits of entropy")

    @classmethod
    def from_settings(cls, source=settings) -> "NegotiationPolicy":
        return cls(
            negotiation_ttl=timedelta(hours=float(source.NEGOTIATION_TTL_HOURS)),
            floor_price_ratio=Decimal(str(source.FLOOR_PRICE_RATIO)),
            min_counter_step=to_money(source.get("MIN_COUNTER_STEP", 1)),
            counter_rule=source.get("COUNTER_RULE", "narrow"),
            regress_tolerance=to_money(source.get("COUNTER_REGRESS_TOLERANCE", 0)),
            offer_rate_limit_per_hour=int(source.get("OFFER_RATE_LIMIT_PER_HOUR", 10)),
            code_ttl=timedelta(hours=float(source.CODE_TTL_HOURS)),
            code_prefix=source.get("CODE_PREFIX", "NEGO-"),
            code_entropy_bytes=int(source.get("CODE_ENTROPY_BYTES", 12)),
        )

    def floor_for(self, list_price: Decimal, minimum_price: Decimal | None = None) -> Decimal:
        """Seller-configured minimum, else a whole-unit share of the list price."""
        if minimum_price is not None:
            return min(to_money(minimum_price), list_price)
        floor = (list_price * self.floor_price_ratio).quantize(Decimal("1"), rounding=ROUND_FLOOR)
        return to_money(floor)

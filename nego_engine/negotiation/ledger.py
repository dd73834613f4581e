"""Offer ledger: append-only record of a negotiation's moves.

Entries are validated against the negotiation's price snapshot and the
alternating-proposer protocol before they are appended. Appending never
commits; the caller owns the transaction.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation

from nego_engine.core.clock import Clock, utcnow
from nego_engine.core.exceptions import (
    InvalidAmount,
    InvalidCounterOffer,
    InvalidSequence,
    PriceOutOfBounds,
    RateLimitExceeded,
    WrongProposer,
)
from nego_engine.core.logging import log
from nego_engine.db.models.negotiation import Negotiation, Party
from nego_engine.db.models.offer import Offer, OfferKind
from nego_engine.negotiation.policy import CENT, NegotiationPolicy


@dataclass(frozen=True)
class LedgerEntry:
    """A move someone wants to append."""

    kind: OfferKind
    party: Party
    actor_id: str
    amount: Decimal | None = None
    note: str | None = None


def as_amount(value) -> Decimal:
    """Coerce a submitted amount to Decimal without rounding it."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(repr(value) if isinstance(value, float) else value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount(value)


def last_amount_by(offers: list[Offer], party: Party) -> Decimal | None:
    for offer in reversed(offers):
        if offer.proposed_by == party.value and offer.amount is not None:
            return offer.amount
    return None


def last_proposal(offers: list[Offer]) -> Offer | None:
    for offer in reversed(offers):
        if OfferKind(offer.kind).is_proposal:
            return offer
    return None


class OfferLedger:
    """Validates and appends ledger entries."""

    def __init__(self, policy: NegotiationPolicy, clock: Clock = utcnow):
        self.policy = policy
        self.clock = clock

    def append(
        self,
        negotiation: Negotiation,
        entry: LedgerEntry,
        expected_sequence: int | None = None,
    ) -> Offer:
        """Validate ``entry`` and append it to the negotiation's ledger."""
        now = self.clock()
        if entry.amount is not None:
            entry = replace(entry, amount=as_amount(entry.amount))

        try:
            self.validate(negotiation, entry, expected_sequence=expected_sequence, now=now)
        except (
            InvalidSequence,
            InvalidAmount,
            PriceOutOfBounds,
            InvalidCounterOffer,
            WrongProposer,
        ) as e:
            log.warning(
                f"Rejected {entry.kind.value} on negotiation {negotiation.id}: {e.message}",
                party=entry.party.value,
                rule=e.details.get("code"),
            )
            raise

        if entry.amount is not None:
            # Exact after validation; only the exponent changes
            entry = replace(entry, amount=entry.amount.quantize(CENT))

        offer = Offer(
            sequence=negotiation.last_sequence + 1,
            kind=entry.kind.value,
            proposed_by=entry.party.value,
            actor_id=entry.actor_id,
            amount=entry.amount,
            note=entry.note,
            created_at=now,
        )
        negotiation.offers.append(offer)
        negotiation.last_activity_at = now
        negotiation.expires_at = now + self.policy.negotiation_ttl
        return offer

    def validate(
        self,
        negotiation: Negotiation,
        entry: LedgerEntry,
        expected_sequence: int | None = None,
        now: datetime | None = None,
    ) -> None:
        offers = negotiation.offers
        self._check_sequence(offers, entry, expected_sequence)
        if entry.amount is not None:
            self._check_bounds(negotiation, entry.amount)
        if entry.kind is OfferKind.COUNTER:
            self._check_counter(negotiation, entry)
        if entry.kind in (OfferKind.COUNTER, OfferKind.ACCEPT, OfferKind.REJECT):
            self._check_proposer(offers, entry)
        self._check_rate(offers, entry, now or self.clock())

    def _check_sequence(
        self,
        offers: list[Offer],
        entry: LedgerEntry,
        expected_sequence: int | None,
    ) -> None:
        last = offers[-1].sequence if offers else 0

        if expected_sequence is not None and expected_sequence != last:
            raise InvalidSequence(
                "Ledger has moved on since you last loaded it",
                expected=expected_sequence,
                actual=last,
            )
        if not offers:
            if entry.kind is not OfferKind.INITIAL:
                raise InvalidSequence("Ledger must start with an initial offer", actual=last)
            if entry.party is not Party.BUYER:
                raise WrongProposer("Only the buyer can make the initial offer")
            return
        if entry.kind is OfferKind.INITIAL:
            raise InvalidSequence("Initial offer already recorded", actual=last)
        if OfferKind(offers[-1].kind).is_terminal:
            raise InvalidSequence("Ledger is closed", actual=last)

    def _check_bounds(self, negotiation: Negotiation, amount: Decimal) -> None:
        if not amount.is_finite():
            raise InvalidAmount(amount)
        if amount <= 0 or amount < negotiation.floor_price or amount > negotiation.list_price:
            raise PriceOutOfBounds(amount, negotiation.floor_price, negotiation.list_price)
        # Bounded by list_price here, so quantize cannot overflow the context
        if amount != amount.quantize(CENT):
            raise InvalidAmount(amount)

    def _check_counter(self, negotiation: Negotiation, entry: LedgerEntry) -> None:
        offers = negotiation.offers
        step = self.policy.min_counter_step

        preceding = next((o.amount for o in reversed(offers) if o.amount is not None), None)
        if preceding is not None and abs(entry.amount - preceding) < step:
            raise InvalidCounterOffer(
                f"Counter must differ from the previous offer by at least {step}",
                rule="min_step",
            )

        own_previous = last_amount_by(offers, entry.party)
        if own_previous is None and entry.party is Party.SELLER:
            # The seller's opening position is the list price
            own_previous = negotiation.list_price

        if self.policy.counter_rule == "narrow":
            standing = last_amount_by(offers, entry.party.counterpart)
            if own_previous is None or standing is None:
                return
            old_gap = own_previous - standing
            new_gap = entry.amount - standing
            if old_gap == 0:
                raise InvalidCounterOffer(
                    "Offers already meet; accept instead of countering",
                    rule="narrow",
                )
            same_side = (new_gap > 0) == (old_gap > 0)
            if not same_side or new_gap == 0 or abs(new_gap) >= abs(old_gap):
                raise InvalidCounterOffer(
                    "Counter must move toward the other party's offer without passing it",
                    rule="narrow",
                )
            return

        if own_previous is None:
            return
        tolerance = self.policy.regress_tolerance
        if entry.party is Party.BUYER and entry.amount < own_previous - tolerance:
            raise InvalidCounterOffer(
                f"Buyer cannot go below a previous offer of {own_previous}",
                rule="no_regress",
            )
        if entry.party is Party.SELLER and entry.amount > own_previous + tolerance:
            raise InvalidCounterOffer(
                f"Seller cannot go above a previous offer of {own_previous}",
                rule="no_regress",
            )

    def _check_proposer(self, offers: list[Offer], entry: LedgerEntry) -> None:
        proposal = last_proposal(offers)
        if proposal is not None and proposal.proposed_by == entry.party.value:
            verb = {
                OfferKind.COUNTER: "counter",
                OfferKind.ACCEPT: "accept",
                OfferKind.REJECT: "reject",
            }[entry.kind]
            raise WrongProposer(f"You cannot {verb} your own open offer")

    def _check_rate(self, offers: list[Offer], entry: LedgerEntry, now: datetime) -> None:
        limit = self.policy.offer_rate_limit_per_hour
        if limit <= 0 or not entry.kind.is_proposal:
            return
        window_start = now - timedelta(hours=1)
        recent = sum(
            1
            for o in offers
            if o.proposed_by == entry.party.value and o.created_at > window_start
        )
        if recent >= limit:
            raise RateLimitExceeded(limit)

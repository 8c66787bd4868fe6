"""
Pricing engine implementation.

Charges are heuristic: a per-kg base rate by service type applied to the
chargeable weight, plus handling, distance and service fees. The volume
tier discount applies to that subtotal and tax is charged on the
discounted amount. Computed amounts round half-up to the minor unit.
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from shared.clock import ensure_utc
from shared.exceptions import InvalidAmountError
from shared.money import ZERO, percent_of, quantize_money

from .exceptions import NoTierFoundError
from .interfaces import ITierSource
from .models import ChargeBreakdown, PricingTier, RateCard, ShipmentDetails

logger = logging.getLogger(__name__)


def parse_dimensions(dimensions: Optional[str]) -> Optional[tuple[Decimal, Decimal, Decimal]]:
    """
    Parse 'LxWxH' (cm) into three decimals.

    Returns None for blank or malformed input; dimensions are optional.
    """
    if not dimensions or not dimensions.strip():
        return None
    parts = dimensions.lower().replace(" ", "").split("x")
    if len(parts) != 3:
        return None
    try:
        length, width, height = (Decimal(p) for p in parts)
    except InvalidOperation:
        return None
    if min(length, width, height) <= 0:
        return None
    return length, width, height


class PricingEngine:
    """
    Computes invoice charges.

    Depends only on a tier source; never touches ledger state.
    """

    def __init__(
        self,
        tier_source: ITierSource,
        tax_rate_percent: Decimal = Decimal("8.5"),
        default_discount_percent: Decimal = ZERO,
        rate_card: Optional[RateCard] = None,
    ):
        self._tiers = tier_source
        self._tax_rate = tax_rate_percent
        self._default_discount = default_discount_percent
        self._rates = rate_card or RateCard()

    @property
    def tax_rate_percent(self) -> Decimal:
        return self._tax_rate

    async def resolve_tier(self, monthly_volume: int, as_of: datetime) -> PricingTier:
        """
        Pick the pricing tier for a monthly shipment volume.

        Only active tiers effective at `as_of` are considered. Where bands
        overlap the tier with the highest minimum wins.

        Args:
            monthly_volume: Shipments so far this month
            as_of: When the tier must be in effect

        Returns:
            The matching PricingTier
        """
        as_of = ensure_utc(as_of)
        candidates = [
            tier
            for tier in await self._tiers.list_tiers()
            if tier.is_effective(as_of) and tier.covers(monthly_volume)
        ]
        if not candidates:
            raise NoTierFoundError(monthly_volume, as_of)
        # Highest band wins; name breaks ties so the choice is deterministic
        return max(candidates, key=lambda t: (t.min_monthly_volume, t.name))

    def _chargeable_weight(self, shipment: ShipmentDetails) -> Decimal:
        weight = shipment.weight
        dims = parse_dimensions(shipment.dimensions)
        if dims is None:
            return weight
        length, width, height = dims
        volumetric = length * width * height / self._rates.volumetric_divisor
        return max(weight, volumetric)

    def _distance_charge(self, origin: str, destination: str) -> Decimal:
        if origin.strip().lower() == destination.strip().lower():
            return self._rates.local_distance_charge
        return self._rates.intercity_distance_charge

    def _validate_shipment(self, shipment: ShipmentDetails) -> None:
        if shipment.weight <= 0:
            raise InvalidAmountError(shipment.weight, "Weight must be positive", field="weight")
        if shipment.declared_value is not None and shipment.declared_value < 0:
            raise InvalidAmountError(
                shipment.declared_value,
                "Declared value must not be negative",
                field="declared_value",
            )

    async def calculate_charges(
        self,
        shipment: ShipmentDetails,
        monthly_volume: int,
        as_of: datetime,
        currency: str = "USD",
    ) -> ChargeBreakdown:
        """
        Price one shipment.

        Args:
            shipment: Weight, service type and optional extras
            monthly_volume: Shipments so far this month, for the tier discount
            as_of: Pricing instant
            currency: Currency the amounts are rounded for

        Returns:
            ChargeBreakdown with subtotal, discount, tax and total
        """
        self._validate_shipment(shipment)
        service_type = shipment.service_type.upper()

        weight_charge = quantize_money(
            self._rates.base_rate_for(service_type) * self._chargeable_weight(shipment),
            currency,
        )
        dimension_charge = (
            self._rates.dimension_handling_charge
            if parse_dimensions(shipment.dimensions)
            else ZERO
        )
        distance_charge = self._distance_charge(shipment.origin, shipment.destination)

        insurance = ZERO
        if shipment.declared_value:
            insurance = percent_of(
                shipment.declared_value, self._rates.insurance_rate_percent, currency
            )
        service_fee = self._rates.service_fees.get(service_type, ZERO)

        subtotal = weight_charge + dimension_charge + distance_charge + insurance + service_fee

        try:
            tier = await self.resolve_tier(monthly_volume, as_of)
            tier_name: Optional[str] = tier.name
            discount_percentage = tier.discount_percentage
        except NoTierFoundError:
            logger.info(
                f"No pricing tier for volume {monthly_volume}, "
                f"using default discount {self._default_discount}%"
            )
            tier_name = None
            discount_percentage = self._default_discount

        breakdown = self._finish(subtotal, discount_percentage, currency)
        breakdown.tier_name = tier_name
        breakdown.components = {
            "weight_charge": weight_charge,
            "dimension_charge": dimension_charge,
            "distance_charge": distance_charge,
            "insurance": insurance,
            "service_fee": service_fee,
        }
        return breakdown

    def _finish(
        self,
        subtotal: Decimal,
        discount_percentage: Decimal,
        currency: str,
    ) -> ChargeBreakdown:
        subtotal = quantize_money(subtotal, currency)
        discount = percent_of(subtotal, discount_percentage, currency)
        tax = percent_of(subtotal - discount, self._tax_rate, currency)
        return ChargeBreakdown(
            subtotal=subtotal,
            discount_amount=discount,
            tax_amount=tax,
            total_amount=subtotal - discount + tax,
            currency=currency,
            discount_percentage=discount_percentage,
            tax_rate_percent=self._tax_rate,
        )

    def price_explicit_amounts(
        self,
        subtotal: Decimal,
        discount_amount: Decimal,
        tax_amount: Decimal,
        currency: str = "USD",
    ) -> ChargeBreakdown:
        """Check caller-supplied amounts and derive the total."""
        for name, value in (
            ("subtotal", subtotal),
            ("discount_amount", discount_amount),
            ("tax_amount", tax_amount),
        ):
            if value < 0:
                raise InvalidAmountError(value, "Amount must not be negative", field=name)
        if discount_amount > subtotal:
            raise InvalidAmountError(
                discount_amount,
                "Discount must not exceed subtotal",
                field="discount_amount",
            )
        return ChargeBreakdown(
            subtotal=subtotal,
            discount_amount=discount_amount,
            tax_amount=tax_amount,
            total_amount=subtotal - discount_amount + tax_amount,
            currency=currency,
        )

    def calculate_subscription_charges(
        self,
        plan_amount: Decimal,
        discount_percentage: Optional[Decimal] = None,
        currency: str = "USD",
    ) -> ChargeBreakdown:
        """Apply the plan discount, then tax, to a subscription price."""
        if plan_amount < 0:
            raise InvalidAmountError(plan_amount, "Plan amount must not be negative", field="amount")
        return self._finish(plan_amount, discount_percentage or ZERO, currency)

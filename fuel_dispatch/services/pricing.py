"""
Pricing engine.

Bills are computed with Decimal arithmetic from a PriceTable. Premiums and volume
discounts are data (PremiumRule / VolumeDiscountRule), so the policy can be read and
tested without tracing conditionals. Every line item is rounded once to two places
(half away from zero) and the total is the sum of the rounded items, so
``total == base_price + tax + delivery_charge - discount`` holds exactly.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional, Tuple, Union

from fuel_dispatch.core.exceptions import InvalidInput
from fuel_dispatch.core.utils import MILLI, round_money, to_decimal
from fuel_dispatch.schemas import BillBreakdown, ProductKind, Variant

KNOWN_BRANDS: Mapping[ProductKind, Tuple[str, ...]] = {
    ProductKind.PETROL: (
        "Indian Oil",
        "Bharat Petroleum",
        "HP Petrol",
        "Shell",
        "Reliance",
        "Essar",
        "Nearby Station",
    ),
    ProductKind.DIESEL: (
        "Indian Oil",
        "Bharat Petroleum",
        "HP Diesel",
        "Shell V-Power",
        "Essar",
        "Reliance Diesel",
    ),
    ProductKind.GAS: (
        "Indane",
        "HP Gas",
        "Bharat Gas",
        "Reliance Gas",
        "GoGas",
        "Supergas",
    ),
}

QUANTITY_KINDS = frozenset({ProductKind.PETROL, ProductKind.DIESEL, ProductKind.GAS})

# Largest single delivery, in litres or kilograms
MAX_QUANTITY = Decimal("10000")


@dataclass(frozen=True)
class PremiumRule:
    """Brand premium: applies when the brand contains any of the markers."""

    kinds: frozenset
    markers: Tuple[str, ...]
    rate: Decimal

    def applies(self, kind: ProductKind, brand: Optional[str]) -> bool:
        if kind not in self.kinds or not brand:
            return False
        return any(marker in brand for marker in self.markers)


@dataclass(frozen=True)
class VolumeDiscountRule:
    kinds: frozenset
    min_quantity: Decimal
    rate: Decimal

    def applies(self, kind: ProductKind, quantity: Decimal) -> bool:
        return kind in self.kinds and quantity >= self.min_quantity


@dataclass(frozen=True)
class PriceTable:
    unit_prices: Mapping[ProductKind, Decimal]
    battery_tiers: Mapping[str, Decimal]
    battery_type_multipliers: Mapping[str, Decimal]
    delivery_charges: Mapping[ProductKind, Decimal]
    tax_rate: Decimal = Decimal("0.18")
    premium_rules: Tuple[PremiumRule, ...] = field(default_factory=tuple)
    volume_discounts: Tuple[VolumeDiscountRule, ...] = field(default_factory=tuple)

    def with_delivery_charges(self, charges: Mapping[str, Decimal]) -> "PriceTable":
        """Overlay delivery charges supplied by the config collaborator."""
        merged = dict(self.delivery_charges)
        for kind, value in charges.items():
            merged[ProductKind(kind)] = to_decimal(value)
        return replace(self, delivery_charges=merged)


DEFAULT_PRICE_TABLE = PriceTable(
    unit_prices={
        ProductKind.PETROL: Decimal("100.50"),
        ProductKind.DIESEL: Decimal("90.20"),
        ProductKind.GAS: Decimal("85.50"),
    },
    battery_tiers={
        "12V": Decimal("1200"),
        "24V": Decimal("2400"),
        "48V": Decimal("4800"),
        "AA": Decimal("120"),
        "AAA": Decimal("100"),
        "9V": Decimal("300"),
    },
    battery_type_multipliers={
        "lithium-ion": Decimal("1.5"),
        "lead-acid": Decimal("1"),
        "nickel-cadmium": Decimal("1"),
        "alkaline": Decimal("1"),
    },
    delivery_charges={
        ProductKind.PETROL: Decimal("50"),
        ProductKind.DIESEL: Decimal("50"),
        ProductKind.GAS: Decimal("80"),
        ProductKind.BATTERY: Decimal("100"),
    },
    tax_rate=Decimal("0.18"),
    premium_rules=(
        PremiumRule(
            kinds=frozenset({ProductKind.GAS}),
            markers=("HP", "Indane"),
            rate=Decimal("0.05"),
        ),
        PremiumRule(
            kinds=frozenset({ProductKind.PETROL, ProductKind.DIESEL}),
            markers=("Shell", "V-Power"),
            rate=Decimal("0.10"),
        ),
    ),
    volume_discounts=(
        VolumeDiscountRule(
            kinds=frozenset({ProductKind.GAS}),
            min_quantity=Decimal("10"),
            rate=Decimal("0.03"),
        ),
        VolumeDiscountRule(
            kinds=frozenset({ProductKind.PETROL, ProductKind.DIESEL}),
            min_quantity=Decimal("20"),
            rate=Decimal("0.05"),
        ),
    ),
)


def parse_kind(product_kind: Union[ProductKind, str]) -> ProductKind:
    try:
        return ProductKind(product_kind)
    except ValueError:
        raise InvalidInput(f"Unknown product kind: {product_kind!r}")


def normalize_quantity(kind: ProductKind, quantity) -> Optional[Decimal]:
    """Validated quantity for fuel/gas; None for battery (always one unit)."""
    if kind not in QUANTITY_KINDS:
        return None
    if quantity is None:
        raise InvalidInput(f"Quantity is required for {kind.value}")
    try:
        value = to_decimal(quantity)
    except ValueError:
        raise InvalidInput(f"Quantity must be a number, got {quantity!r}")
    if not value.is_finite() or value <= 0:
        raise InvalidInput("Quantity must be a positive number")
    if value > MAX_QUANTITY:
        raise InvalidInput(f"Quantity must not exceed {MAX_QUANTITY}")
    try:
        exact = value == value.quantize(MILLI)
    except InvalidOperation:
        exact = False
    if not exact:
        raise InvalidInput("Quantity supports at most three decimal places")
    return value


def normalize_variant(kind: ProductKind, variant) -> Variant:
    """Checks the variant against the catalog and drops fields foreign to the kind."""
    if variant is None:
        variant = Variant()
    elif isinstance(variant, dict):
        variant = Variant(**variant)

    if kind == ProductKind.BATTERY:
        if variant.battery_type not in DEFAULT_PRICE_TABLE.battery_type_multipliers:
            raise InvalidInput(f"Unknown battery type: {variant.battery_type!r}")
        if variant.battery_capacity not in DEFAULT_PRICE_TABLE.battery_tiers:
            raise InvalidInput(f"Unknown battery capacity: {variant.battery_capacity!r}")
        return Variant(
            battery_type=variant.battery_type,
            battery_capacity=variant.battery_capacity,
        )

    if variant.brand not in KNOWN_BRANDS[kind]:
        raise InvalidInput(f"Unknown {kind.value} brand: {variant.brand!r}")
    return Variant(brand=variant.brand)


def _raw_base_price(
    kind: ProductKind,
    quantity: Optional[Decimal],
    variant: Variant,
    table: PriceTable,
) -> Decimal:
    if kind == ProductKind.BATTERY:
        try:
            tier = table.battery_tiers[variant.battery_capacity]
            multiplier = table.battery_type_multipliers[variant.battery_type]
        except KeyError as e:
            raise InvalidInput(f"No battery price for {e.args[0]!r}")
        return tier * multiplier

    try:
        unit_price = table.unit_prices[kind]
    except KeyError:
        raise InvalidInput(f"No unit price for {kind.value}")

    raw = unit_price * quantity
    for rule in table.premium_rules:
        if rule.applies(kind, variant.brand):
            raw = raw * (1 + rule.rate)
            break
    return raw


def compute_bill(
    product_kind: Union[ProductKind, str],
    quantity,
    variant,
    price_table: PriceTable = DEFAULT_PRICE_TABLE,
) -> BillBreakdown:
    kind = parse_kind(product_kind)
    variant = normalize_variant(kind, variant)
    qty = normalize_quantity(kind, quantity)

    base_price = round_money(_raw_base_price(kind, qty, variant, price_table))

    discount = Decimal("0.00")
    if qty is not None:
        for rule in price_table.volume_discounts:
            if rule.applies(kind, qty):
                discount = round_money(base_price * rule.rate)
                break

    tax = round_money(base_price * price_table.tax_rate)
    try:
        delivery_charge = round_money(price_table.delivery_charges[kind])
    except KeyError:
        raise InvalidInput(f"No delivery charge configured for {kind.value}")

    total = base_price + tax + delivery_charge - discount

    return BillBreakdown(
        base_price=base_price,
        tax=tax,
        delivery_charge=delivery_charge,
        discount=discount,
        total=total,
    )

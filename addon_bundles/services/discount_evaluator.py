"""Checkout-time discount evaluation for add-on bundles.

Given the discount config embedded in the bundle's discount resource and
the cart lines of one checkout calculation, produce the per-line discount
candidates. The module holds no state and performs no I/O: every call
receives all of its inputs, and a malformed config entry only disables
that entry. Nothing here may raise for bad data, since an exception in the
pricing step breaks checkout for the whole cart.
"""

import decimal
import json
from collections import namedtuple

PERCENTAGE = "PERCENTAGE"
FIXED_AMOUNT = "FIXED_AMOUNT"
FIXED_PRICE = "FIXED_PRICE"
FREE_GIFT = "FREE_GIFT"
DISCOUNT_TYPES = frozenset({PERCENTAGE, FIXED_AMOUNT, FIXED_PRICE, FREE_GIFT})

PRODUCT_VARIANT = "ProductVariant"
PRODUCT_DISCOUNT_CLASS = "PRODUCT"
FALLBACK_MAX_QUANTITY = 99

FREE_GIFT_MESSAGE = "Free Gift"
DEFAULT_MESSAGE = "Add-On Discount"

_CENT = decimal.Decimal("0.01")
_HUNDRED = decimal.Decimal("100")

AddOnRule = namedtuple(
    "AddOnRule",
    ["add_on_id", "discount_type", "discount_value", "label", "subscription_only", "max_quantity"],
)


class DiscountCandidate(namedtuple(
    "DiscountCandidate",
    ["message", "target_line_id", "discounted_quantity", "percentage", "fixed_amount"],
)):
    """One line's discount. Exactly one of ``percentage`` / ``fixed_amount`` is set."""

    __slots__ = ()

    def to_dict(self):
        if self.percentage is not None:
            value = {"percentage": {"value": float(self.percentage)}}
        else:
            value = {
                "fixedAmount": {
                    "amount": str(self.fixed_amount),
                    "appliesToEachItem": True,
                }
            }
        return {
            "message": self.message,
            "targets": [
                {
                    "cartLine": {
                        "id": self.target_line_id,
                        "quantity": self.discounted_quantity,
                    }
                }
            ],
            "value": value,
        }


def _decimal(value):
    """Parse a JSON number or numeric string; ``None`` on anything else."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = decimal.Decimal(str(value))
    except (decimal.InvalidOperation, ValueError, TypeError):
        return None
    if not result.is_finite():
        return None
    return result


def _positive_int(value, default):
    if isinstance(value, bool):
        return default
    try:
        result = int(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return result if result > 0 else default


def _parse_rule(entry):
    """Turn one ``addOns[]`` entry into an :class:`AddOnRule`, or ``None``."""
    if not isinstance(entry, dict):
        return None
    discount_type = entry.get("discountType")
    if discount_type not in DISCOUNT_TYPES:
        return None

    value = None
    if discount_type != FREE_GIFT:
        value = _decimal(entry.get("discountValue"))
        if value is None or value <= 0:
            return None

    label = entry.get("discountLabel")
    return AddOnRule(
        add_on_id=str(entry.get("addOnId", "")),
        discount_type=discount_type,
        discount_value=value,
        label=label if isinstance(label, str) and label else None,
        subscription_only=entry.get("subscriptionOnly") is True,
        max_quantity=_positive_int(entry.get("maxQuantity"), FALLBACK_MAX_QUANTITY),
    )


def build_variant_index(discount_config):
    """Map variant GID → :class:`AddOnRule`.

    A variant listed under two add-ons resolves to the later one. Saving
    such a bundle is rejected upstream; this only keeps evaluation total.
    """
    index = {}
    if not isinstance(discount_config, dict):
        return index
    add_ons = discount_config.get("addOns")
    if not isinstance(add_ons, list):
        return index
    for entry in add_ons:
        rule = _parse_rule(entry)
        if rule is None:
            continue
        variant_ids = entry.get("targetVariantIds")
        if not isinstance(variant_ids, list):
            continue
        for variant_id in variant_ids:
            if isinstance(variant_id, str) and variant_id:
                index[variant_id] = rule
    return index


def _bundle_marker(line):
    marker = line.get("addonBundleId")
    if isinstance(marker, dict):
        marker = marker.get("value")
    return marker if isinstance(marker, str) and marker else None


def _unit_price(line):
    cost = line.get("cost")
    if not isinstance(cost, dict):
        return None
    per_unit = cost.get("amountPerQuantity")
    if not isinstance(per_unit, dict):
        return None
    return _decimal(per_unit.get("amount"))


def _candidate_value(rule, line):
    """Return ``(percentage, fixed_amount)`` for *line*, or ``None`` to skip."""
    if rule.discount_type == FREE_GIFT:
        return _HUNDRED, None
    if rule.discount_type == PERCENTAGE:
        return min(rule.discount_value, _HUNDRED), None
    if rule.discount_type == FIXED_AMOUNT:
        return None, rule.discount_value.quantize(_CENT, rounding=decimal.ROUND_HALF_UP)
    if rule.discount_type == FIXED_PRICE:
        unit_price = _unit_price(line)
        if unit_price is None or rule.discount_value >= unit_price:
            return None
        amount_off = (unit_price - rule.discount_value).quantize(
            _CENT, rounding=decimal.ROUND_HALF_UP
        )
        return None, amount_off
    return None


def _evaluate_line(line, index, bundle_id):
    if not isinstance(line, dict):
        return None

    marker = _bundle_marker(line)
    if marker is None:
        return None
    if bundle_id and marker != bundle_id:
        return None

    merchandise = line.get("merchandise")
    if not isinstance(merchandise, dict) or merchandise.get("__typename") != PRODUCT_VARIANT:
        return None

    variant_id = merchandise.get("id")
    if not isinstance(variant_id, str):
        return None
    rule = index.get(variant_id)
    if rule is None:
        return None

    if rule.subscription_only and not line.get("sellingPlanAllocation"):
        return None

    quantity = _positive_int(line.get("quantity"), 0)
    if quantity <= 0:
        return None

    value = _candidate_value(rule, line)
    if value is None:
        return None
    percentage, fixed_amount = value

    message = rule.label or (FREE_GIFT_MESSAGE if rule.discount_type == FREE_GIFT else DEFAULT_MESSAGE)
    return DiscountCandidate(
        message=message,
        target_line_id=line.get("id"),
        discounted_quantity=min(quantity, rule.max_quantity),
        percentage=percentage,
        fixed_amount=fixed_amount,
    )


def evaluate(discount_config, cart_lines):
    """Compute discount candidates for *cart_lines*.

    Args:
        discount_config: the decoded discount config dict.
        cart_lines: the function input's ``cart.lines`` list.

    Returns:
        list of :class:`DiscountCandidate`; empty when nothing applies.
    """
    index = build_variant_index(discount_config)
    if not index or not isinstance(cart_lines, list):
        return []
    bundle_id = discount_config.get("bundleId")
    bundle_id = str(bundle_id) if bundle_id not in (None, "") else None

    candidates = []
    for line in cart_lines:
        candidate = _evaluate_line(line, index, bundle_id)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def _load_config(raw):
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw:
        return None
    try:
        config = json.loads(raw)
    except ValueError:
        return None
    return config if isinstance(config, dict) else None


def run_cart_lines_discounts(function_input):
    """Entry point for the cart-lines discount target.

    Accepts ``{"cart": {"lines": [...]}, "discount": {"metafield": {"value":
    "<json>"}, "discountClasses": [...]}}`` and returns
    ``{"operations": [...]}``.
    """
    if not isinstance(function_input, dict):
        return {"operations": []}
    cart = function_input.get("cart") or {}
    discount = function_input.get("discount") or {}
    lines = cart.get("lines") if isinstance(cart, dict) else None
    if not lines or not isinstance(discount, dict):
        return {"operations": []}

    classes = discount.get("discountClasses")
    if isinstance(classes, list) and PRODUCT_DISCOUNT_CLASS not in classes:
        return {"operations": []}

    metafield = discount.get("metafield") or {}
    config = _load_config(metafield.get("value") if isinstance(metafield, dict) else None)
    if config is None:
        return {"operations": []}

    candidates = evaluate(config, lines)
    if not candidates:
        return {"operations": []}
    return {
        "operations": [
            {
                "productDiscountsAdd": {
                    "candidates": [c.to_dict() for c in candidates],
                    "selectionStrategy": "ALL",
                }
            }
        ]
    }


def run_delivery_options_discounts(function_input):
    """Entry point for the delivery-options target. Bundles never discount shipping."""
    return {"operations": []}

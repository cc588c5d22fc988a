"""Build the two derived configurations of a bundle.

``WidgetConfig`` is what the storefront widget renders; ``DiscountConfig``
is what the checkout discount function evaluates. Both are rebuilt from a
single snapshot of the source-of-truth rows on every sync pass and never
patched in place.

The builders are pure and total: missing optional data degrades to
documented defaults rather than raising.
"""

import dataclasses
import decimal
from dataclasses import dataclass, field
from typing import Optional, Tuple

from ..models import AddOnSet, Bundle, WidgetStyle
from ..utils import to_shopify_gid

DISCOUNT_CONFIG_VERSION = 1
DEFAULT_CURRENCY_SYMBOL = "$"
DEFAULT_MAX_QUANTITY = 10

STYLE_FIELDS = (
    ("backgroundColor", "background_color"),
    ("fontColor", "font_color"),
    ("buttonColor", "button_color"),
    ("buttonTextColor", "button_text_color"),
    ("discountBadgeColor", "discount_badge_color"),
    ("discountTextColor", "discount_text_color"),
    ("fontSize", "font_size"),
    ("titleFontSize", "title_font_size"),
    ("subtitleFontSize", "subtitle_font_size"),
    ("layoutType", "layout_type"),
    ("borderRadius", "border_radius"),
    ("borderStyle", "border_style"),
    ("borderWidth", "border_width"),
    ("borderColor", "border_color"),
    ("padding", "padding"),
    ("marginTop", "margin_top"),
    ("marginBottom", "margin_bottom"),
    ("imageSize", "image_size"),
    ("discountLabelStyle", "discount_label_style"),
    ("showCountdownTimer", "show_countdown_timer"),
    ("customCss", "custom_css"),
    ("customJs", "custom_js"),
)


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WidgetVariant:
    shopify_variant_id: str
    variant_title: Optional[str] = None
    variant_price: Optional[float] = None

    def to_dict(self):
        return {
            "shopifyVariantId": self.shopify_variant_id,
            "variantTitle": self.variant_title,
            "variantPrice": self.variant_price,
        }


@dataclass(frozen=True)
class WidgetAddOn:
    add_on_id: str
    shopify_product_id: str
    product_handle: Optional[str]
    product_title: Optional[str]
    image_url: Optional[str]
    title: Optional[str]
    discount_type: str
    discount_value: Optional[float]
    discount_label: Optional[str]
    badge_text: str
    is_default_selected: bool
    subscription_only: bool
    show_quantity_selector: bool
    max_quantity: int
    selected_variants: Tuple[WidgetVariant, ...] = ()

    def to_dict(self):
        return {
            "addOnId": self.add_on_id,
            "shopifyProductId": self.shopify_product_id,
            "productHandle": self.product_handle,
            "productUrl": f"/products/{self.product_handle}" if self.product_handle else None,
            "productTitle": self.product_title,
            "imageUrl": self.image_url,
            "title": self.title,
            "discountType": self.discount_type,
            "discountValue": self.discount_value,
            "discountLabel": self.discount_label,
            "badgeText": self.badge_text,
            "isDefaultSelected": self.is_default_selected,
            "subscriptionOnly": self.subscription_only,
            "showQuantitySelector": self.show_quantity_selector,
            "maxQuantity": self.max_quantity,
            "selectedVariants": [v.to_dict() for v in self.selected_variants],
        }


@dataclass(frozen=True)
class WidgetGroup:
    group_id: str
    title: str
    product_ids: Tuple[str, ...] = ()

    def to_dict(self):
        return {
            "groupId": self.group_id,
            "title": self.title,
            "productIds": list(self.product_ids),
        }


@dataclass(frozen=True)
class WidgetConfig:
    bundle_id: str
    title: str
    subtitle: Optional[str]
    selection_mode: str
    targeting_type: str
    start_date: Optional[str]
    end_date: Optional[str]
    delete_add_ons_with_main: bool
    add_ons: Tuple[WidgetAddOn, ...] = ()
    style: Tuple[Tuple[str, object], ...] = ()
    product_groups: Tuple[WidgetGroup, ...] = ()
    group_id: Optional[str] = None

    def to_dict(self):
        data = {
            "bundleId": self.bundle_id,
            "title": self.title,
            "subtitle": self.subtitle,
            "selectionMode": self.selection_mode,
            "targetingType": self.targeting_type,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "deleteAddonsOnMainDelete": self.delete_add_ons_with_main,
            "addOns": [a.to_dict() for a in self.add_ons],
            "style": dict(self.style),
        }
        if self.product_groups:
            data["productGroups"] = [g.to_dict() for g in self.product_groups]
        if self.group_id is not None:
            data["groupId"] = self.group_id
        return data


@dataclass(frozen=True)
class DiscountAddOn:
    add_on_id: str
    target_variant_ids: Tuple[str, ...]
    discount_type: str
    discount_value: Optional[float]
    discount_label: Optional[str]
    message: str
    subscription_only: bool
    max_quantity: int
    product_title: str = ""
    image_url: Optional[str] = None
    title: Optional[str] = None
    is_default_selected: bool = False
    show_quantity_selector: bool = False

    def to_dict(self):
        return {
            "addOnId": self.add_on_id,
            "productTitle": self.product_title,
            "imageUrl": self.image_url,
            "title": self.title,
            "targetVariantIds": list(self.target_variant_ids),
            "discountType": self.discount_type,
            "discountValue": self.discount_value,
            "discountLabel": self.discount_label,
            "isDefaultSelected": self.is_default_selected,
            "subscriptionOnly": self.subscription_only,
            "showQuantitySelector": self.show_quantity_selector,
            "maxQuantity": self.max_quantity,
            "message": self.message,
        }


@dataclass(frozen=True)
class DiscountConfig:
    bundle_id: str
    selection_strategy: str
    add_ons: Tuple[DiscountAddOn, ...] = field(default_factory=tuple)
    version: int = DISCOUNT_CONFIG_VERSION

    def to_dict(self):
        return {
            "version": self.version,
            "bundleId": self.bundle_id,
            "selectionStrategy": self.selection_strategy,
            "addOns": [a.to_dict() for a in self.add_ons],
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _to_number(value):
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError, decimal.InvalidOperation):
        return None


def _format_amount(value):
    """``20`` → ``"20"``, ``12.5`` → ``"12.50"``."""
    amount = decimal.Decimal(str(value))
    if amount == amount.to_integral_value():
        return str(int(amount))
    return f"{amount:.2f}"


def default_badge_text(discount_type, discount_value, currency_symbol=DEFAULT_CURRENCY_SYMBOL):
    """Synthesize the badge shown when the merchant set no discount label.

    >>> default_badge_text("PERCENTAGE", 20)
    '20% OFF'
    """
    if discount_type == AddOnSet.DiscountType.FREE_GIFT:
        return "FREE"
    number = _to_number(discount_value)
    if number is None or number <= 0:
        return "SPECIAL OFFER"
    if discount_type == AddOnSet.DiscountType.PERCENTAGE:
        return f"{_format_amount(number)}% OFF"
    if discount_type == AddOnSet.DiscountType.FIXED_AMOUNT:
        return f"{currency_symbol}{_format_amount(number)} OFF"
    if discount_type == AddOnSet.DiscountType.FIXED_PRICE:
        return f"ONLY {currency_symbol}{_format_amount(number)}"
    return "SPECIAL OFFER"


def _discount_value(add_on):
    if add_on.discount_type == AddOnSet.DiscountType.FREE_GIFT:
        return None
    return _to_number(add_on.discount_value)


def _variants(add_on):
    related = getattr(add_on, "selected_variants", None)
    if related is None:
        return []
    return list(related.all()) if hasattr(related, "all") else list(related)


def _max_quantity(add_on):
    try:
        value = int(add_on.max_quantity)
    except (TypeError, ValueError):
        return DEFAULT_MAX_QUANTITY
    return value if value > 0 else DEFAULT_MAX_QUANTITY


def _isoformat(value):
    return value.isoformat() if value else None


def build_style(style):
    """Flatten a :class:`WidgetStyle` into camelCase pairs; ``None`` → defaults."""
    if style is None:
        style = WidgetStyle()
    return tuple((key, getattr(style, attr)) for key, attr in STYLE_FIELDS)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def build_widget_config(
    bundle,
    add_on_sets,
    style=None,
    product_handles=None,
    product_groups=None,
    currency_symbol=DEFAULT_CURRENCY_SYMBOL,
):
    """Build the storefront :class:`WidgetConfig` for *bundle*.

    Args:
        bundle: :class:`~addon_bundles.models.Bundle`.
        add_on_sets: ordered add-on sets with ``selected_variants`` loaded.
        style: the bundle's :class:`~addon_bundles.models.WidgetStyle`, or
            ``None`` to render with default styling.
        product_handles: optional ``{product_gid: handle}``; only enriches
            display links.
        product_groups: optional ordered ``ProductGroup`` rows with ``items``
            loaded, rendered as tabs for grouped bundles.
        currency_symbol: prefix used in synthesized badge text.
    """
    product_handles = product_handles or {}
    add_ons = []
    for add_on in add_on_sets:
        product_id = to_shopify_gid("Product", add_on.shopify_product_id)
        discount_value = _discount_value(add_on)
        add_ons.append(
            WidgetAddOn(
                add_on_id=str(add_on.pk),
                shopify_product_id=product_id,
                product_handle=product_handles.get(product_id),
                product_title=add_on.product_title,
                image_url=add_on.custom_image_url or add_on.product_image_url,
                title=add_on.title,
                discount_type=add_on.discount_type,
                discount_value=discount_value,
                discount_label=add_on.discount_label or None,
                badge_text=add_on.discount_label
                or default_badge_text(add_on.discount_type, discount_value, currency_symbol),
                is_default_selected=bool(add_on.is_default_selected),
                subscription_only=bool(add_on.subscription_only),
                show_quantity_selector=bool(add_on.show_quantity_selector),
                max_quantity=_max_quantity(add_on),
                selected_variants=tuple(
                    WidgetVariant(
                        shopify_variant_id=to_shopify_gid(
                            "ProductVariant", variant.shopify_variant_id
                        ),
                        variant_title=variant.variant_title,
                        variant_price=_to_number(variant.variant_price),
                    )
                    for variant in _variants(add_on)
                ),
            )
        )

    groups = ()
    if bundle.targeting_type == Bundle.TargetingType.GROUPED and product_groups:
        groups = tuple(
            WidgetGroup(
                group_id=str(group.pk),
                title=group.title,
                product_ids=tuple(
                    to_shopify_gid("Product", item.shopify_resource_id)
                    for item in _group_items(group)
                ),
            )
            for group in product_groups
        )

    return WidgetConfig(
        bundle_id=str(bundle.pk),
        title=bundle.title,
        subtitle=bundle.subtitle,
        selection_mode=bundle.selection_mode,
        targeting_type=bundle.targeting_type,
        start_date=_isoformat(bundle.start_date),
        end_date=_isoformat(bundle.end_date),
        delete_add_ons_with_main=bool(bundle.delete_add_ons_with_main),
        add_ons=tuple(add_ons),
        style=build_style(style),
        product_groups=groups,
    )


def _group_items(group):
    items = getattr(group, "items", None)
    if items is None:
        return []
    return list(items.all()) if hasattr(items, "all") else list(items)


def restrict_to_group(widget_config, group_id, product_ids):
    """Return a copy of *widget_config* showing only the group's own add-ons.

    An add-on belongs to a group when its product is one of the group's
    items.
    """
    allowed = set(product_ids)
    return dataclasses.replace(
        widget_config,
        add_ons=tuple(a for a in widget_config.add_ons if a.shopify_product_id in allowed),
        group_id=str(group_id),
    )


def build_discount_config(bundle, add_on_sets, currency_symbol=DEFAULT_CURRENCY_SYMBOL):
    """Build the checkout :class:`DiscountConfig` for *bundle*.

    Add-ons without any selected variant are dropped: no cart line could
    ever match them.
    """
    entries = []
    for add_on in add_on_sets:
        variant_ids = tuple(
            to_shopify_gid("ProductVariant", v.shopify_variant_id)
            for v in _variants(add_on)
        )
        if not variant_ids:
            continue
        discount_value = _discount_value(add_on)
        entries.append(
            DiscountAddOn(
                add_on_id=str(add_on.pk),
                target_variant_ids=variant_ids,
                discount_type=add_on.discount_type,
                discount_value=discount_value,
                discount_label=add_on.discount_label or None,
                message=add_on.discount_label
                or default_badge_text(add_on.discount_type, discount_value, currency_symbol),
                subscription_only=bool(add_on.subscription_only),
                max_quantity=_max_quantity(add_on),
                product_title=add_on.product_title or "",
                image_url=add_on.custom_image_url or add_on.product_image_url,
                title=add_on.title,
                is_default_selected=bool(add_on.is_default_selected),
                show_quantity_selector=bool(add_on.show_quantity_selector),
            )
        )

    return DiscountConfig(
        bundle_id=str(bundle.pk),
        selection_strategy=(
            "FIRST" if bundle.selection_mode == Bundle.SelectionMode.SINGLE else "ALL"
        ),
        add_ons=tuple(entries),
    )

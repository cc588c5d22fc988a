"""Admin mutations on bundles.

Every operation commits its change, drives the discount lifecycle for the
bundle's status transition, runs a sync pass and returns an
:class:`OperationResult`. A discount failure is always reported back in
``discount_error``: it means checkout pricing is stale or missing.

Invalid input raises ``ValueError`` before anything is written.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from django.db import transaction

from ..models import (
    AddOnSet,
    AddOnSetVariant,
    Bundle,
    BundleTargetedItem,
    ProductGroup,
    ProductGroupItem,
    WidgetStyle,
)
from ..utils import extract_id
from .config_builder import STYLE_FIELDS
from .discount_lifecycle import CREATE, UPDATE
from .sync import SyncCoordinator

logger = logging.getLogger(__name__)

BUNDLE_FIELDS = frozenset({
    "title",
    "subtitle",
    "status",
    "start_date",
    "end_date",
    "selection_mode",
    "targeting_type",
    "combine_with_product_discounts",
    "combine_with_order_discounts",
    "combine_with_shipping_discounts",
    "delete_add_ons_with_main",
})

ADD_ON_FIELDS = frozenset({
    "shopify_product_id",
    "product_title",
    "product_image_url",
    "custom_image_url",
    "title",
    "discount_type",
    "discount_value",
    "discount_label",
    "is_default_selected",
    "subscription_only",
    "show_quantity_selector",
    "max_quantity",
})

STYLE_ATTRS = frozenset(attr for _, attr in STYLE_FIELDS)


@dataclass
class OperationResult:
    success: bool = True
    bundle_id: Optional[int] = None
    sync_report: Optional[object] = None
    discount_error: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    # a failed leg may succeed when the operation is repeated
    retryable: bool = False

    def to_dict(self):
        return {
            "success": self.success,
            "bundle_id": self.bundle_id,
            "discount_error": self.discount_error,
            "errors": list(self.errors),
            "sync": self.sync_report.to_dict() if self.sync_report is not None else None,
        }


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _check_fields(values, allowed, kind):
    unknown = set(values) - allowed
    if unknown:
        raise ValueError(f"Unknown {kind} fields: {', '.join(sorted(unknown))}")


def _check_choice(value, choices, name):
    if value is not None and value not in choices.values:
        raise ValueError(f"Invalid {name}: {value}")


def validate_bundle_fields(values):
    _check_fields(values, BUNDLE_FIELDS, "bundle")
    _check_choice(values.get("status"), Bundle.Status, "status")
    _check_choice(values.get("selection_mode"), Bundle.SelectionMode, "selection mode")
    _check_choice(values.get("targeting_type"), Bundle.TargetingType, "targeting type")
    if "title" in values and not (values["title"] or "").strip():
        raise ValueError("Bundle title is required")
    start, end = values.get("start_date"), values.get("end_date")
    if start and end and end <= start:
        raise ValueError("end_date must be after start_date")


def validate_add_on_fields(values):
    _check_fields(values, ADD_ON_FIELDS, "add-on")
    _check_choice(values.get("discount_type"), AddOnSet.DiscountType, "discount type")
    value = values.get("discount_value")
    if value is not None and value < 0:
        raise ValueError("discount_value must not be negative")
    if values.get("max_quantity") is not None and values["max_quantity"] < 1:
        raise ValueError("max_quantity must be at least 1")


def validate_unique_variants(bundle, variant_ids, exclude_add_on_id=None):
    """Reject variants already mapped to another add-on of *bundle*.

    At checkout a variant maps to exactly one add-on; a second mapping
    would silently shadow the first.
    """
    normalized = [extract_id(v) for v in variant_ids]
    if len(set(normalized)) != len(normalized):
        raise ValueError("The same variant is listed twice")
    taken = AddOnSetVariant.objects.filter(add_on_set__bundle=bundle)
    if exclude_add_on_id is not None:
        taken = taken.exclude(add_on_set_id=exclude_add_on_id)
    clashes = sorted(
        {extract_id(v) for v in taken.values_list("shopify_variant_id", flat=True)}
        & set(normalized)
    )
    if clashes:
        raise ValueError(
            f"Variants already used by another add-on of this bundle: {', '.join(clashes)}"
        )


# ---------------------------------------------------------------------------
# Shared flow
# ---------------------------------------------------------------------------

def _coordinator(bundle, coordinator):
    return coordinator or SyncCoordinator.for_shop(bundle.shop)


def _get_bundle(bundle_id):
    return Bundle.objects.select_related("shop").get(pk=bundle_id)


def _after_commit(bundle, old_status, coordinator=None, trigger="admin"):
    """Run the lifecycle transition and a sync pass for a committed change."""
    coordinator = _coordinator(bundle, coordinator)
    lifecycle = coordinator.lifecycle.transition(bundle, old_status)
    report = coordinator.sync(
        bundle.pk,
        trigger=trigger,
        update_discount=lifecycle.action not in (CREATE, UPDATE),
    )
    discount_error = lifecycle.error or report.discount_error
    errors = [slot.error for slot in report.failed_slots] + list(report.errors)
    if discount_error:
        logger.error("Bundle %s discount out of date: %s", bundle.pk, discount_error)
    return OperationResult(
        success=discount_error is None,
        bundle_id=bundle.pk,
        sync_report=report,
        discount_error=discount_error,
        errors=errors,
        retryable=_retryable(lifecycle, report),
    )


def _retryable(lifecycle, report):
    return (not lifecycle.success and lifecycle.transient) or report.retryable


def resync_bundle(bundle_id, coordinator=None, trigger="admin"):
    """Re-run the lifecycle and a sync pass for changes committed elsewhere."""
    bundle = _get_bundle(bundle_id)
    return _after_commit(bundle, bundle.status, coordinator, trigger)


# ---------------------------------------------------------------------------
# Bundles
# ---------------------------------------------------------------------------

def create_bundle(shop, coordinator=None, **values):
    """Create a bundle with a default widget style."""
    validate_bundle_fields(values)
    with transaction.atomic():
        bundle = Bundle.objects.create(shop=shop, **values)
        WidgetStyle.objects.create(bundle=bundle)
    logger.info("Created bundle %s (%s) for %s", bundle.pk, bundle.status, shop.shopify_domain)
    return _after_commit(bundle, Bundle.Status.DRAFT, coordinator, trigger="bundle_created")


def update_bundle(bundle_id, coordinator=None, **values):
    validate_bundle_fields(values)
    with transaction.atomic():
        bundle = Bundle.objects.select_for_update().select_related("shop").get(pk=bundle_id)
        old_status = bundle.status
        for name, value in values.items():
            setattr(bundle, name, value)
        bundle.save()
    if old_status != bundle.status:
        logger.info("Bundle %s status %s -> %s", bundle.pk, old_status, bundle.status)
    return _after_commit(bundle, old_status, coordinator, trigger="bundle_updated")


def set_bundle_status(bundle_id, status, coordinator=None):
    return update_bundle(bundle_id, coordinator=coordinator, status=status)


def delete_bundle(bundle_id, coordinator=None):
    """Delete the discount, release the bundle's slots, then delete its rows.

    If the discount cannot be deleted the bundle is kept (ARCHIVED), so the
    id of the live discount is not lost.
    """
    bundle = _get_bundle(bundle_id)
    coordinator = _coordinator(bundle, coordinator)
    old_status = bundle.status

    lifecycle = coordinator.lifecycle.on_delete(bundle)
    bundle.status = Bundle.Status.ARCHIVED
    bundle.save(update_fields=["status", "updated_at"])
    report = coordinator.sync(bundle.pk, trigger="bundle_deleted", update_discount=False)
    discount_error = lifecycle.error or report.discount_error
    if discount_error:
        logger.error(
            "Bundle %s not deleted (was %s): %s", bundle.pk, old_status, discount_error
        )
        return OperationResult(
            success=False,
            bundle_id=bundle.pk,
            sync_report=report,
            discount_error=discount_error,
            errors=["Bundle archived but not deleted: discount could not be removed"],
            retryable=_retryable(lifecycle, report),
        )

    bundle.delete()
    logger.info("Deleted bundle %s", bundle_id)
    return OperationResult(
        bundle_id=bundle_id,
        sync_report=report,
        errors=[slot.error for slot in report.failed_slots],
        retryable=report.retryable,
    )


def duplicate_bundle(bundle_id, coordinator=None):
    """Copy a bundle with all its children as a DRAFT without a discount."""
    source = _get_bundle(bundle_id)
    with transaction.atomic():
        copy = Bundle.objects.create(
            shop=source.shop,
            title=f"{source.title} (Copy)",
            subtitle=source.subtitle,
            status=Bundle.Status.DRAFT,
            start_date=source.start_date,
            end_date=source.end_date,
            selection_mode=source.selection_mode,
            targeting_type=source.targeting_type,
            combine_with_product_discounts=source.combine_with_product_discounts,
            combine_with_order_discounts=source.combine_with_order_discounts,
            combine_with_shipping_discounts=source.combine_with_shipping_discounts,
            delete_add_ons_with_main=source.delete_add_ons_with_main,
        )
        for add_on in source.add_on_sets.prefetch_related("selected_variants"):
            variants = list(add_on.selected_variants.all())
            add_on.pk = None
            add_on.bundle = copy
            add_on.save()
            AddOnSetVariant.objects.bulk_create(
                AddOnSetVariant(
                    add_on_set=add_on,
                    shopify_variant_id=v.shopify_variant_id,
                    variant_title=v.variant_title,
                    variant_sku=v.variant_sku,
                    variant_price=v.variant_price,
                    position=v.position,
                )
                for v in variants
            )
        BundleTargetedItem.objects.bulk_create(
            BundleTargetedItem(
                bundle=copy,
                shopify_resource_id=item.shopify_resource_id,
                shopify_resource_type=item.shopify_resource_type,
                title=item.title,
                image_url=item.image_url,
            )
            for item in source.targeted_items.all()
        )
        for group in source.product_groups.prefetch_related("items"):
            items = list(group.items.all())
            new_group = ProductGroup.objects.create(
                bundle=copy, title=group.title, position=group.position
            )
            ProductGroupItem.objects.bulk_create(
                ProductGroupItem(
                    product_group=new_group,
                    shopify_resource_id=item.shopify_resource_id,
                    shopify_resource_type=item.shopify_resource_type,
                    title=item.title,
                    image_url=item.image_url,
                    position=item.position,
                )
                for item in items
            )
        try:
            style = source.widget_style
        except WidgetStyle.DoesNotExist:
            WidgetStyle.objects.create(bundle=copy)
        else:
            style.pk = None
            style.id = None
            style.bundle = copy
            style.save()
    logger.info("Duplicated bundle %s as %s", source.pk, copy.pk)
    return _after_commit(copy, Bundle.Status.DRAFT, coordinator, trigger="bundle_duplicated")


def sync_now(bundle_id, coordinator=None):
    """Manual re-sync, also repairing a missing or stale discount."""
    return resync_bundle(bundle_id, coordinator, trigger="manual")


# ---------------------------------------------------------------------------
# Add-on sets
# ---------------------------------------------------------------------------

def _variant_rows(add_on, variants):
    return [
        AddOnSetVariant(
            add_on_set=add_on,
            shopify_variant_id=extract_id(v["id"]),
            variant_title=v.get("title"),
            variant_sku=v.get("sku"),
            variant_price=v.get("price"),
            position=index,
        )
        for index, v in enumerate(variants)
    ]


def create_add_on_set(bundle_id, variants=(), coordinator=None, **values):
    """Attach a companion product to a bundle.

    Args:
        bundle_id: owning bundle.
        variants: ``[{"id", "title", "sku", "price"}, ...]`` to offer.
        **values: :class:`~addon_bundles.models.AddOnSet` fields;
            ``shopify_product_id`` is required.
    """
    validate_add_on_fields(values)
    if not values.get("shopify_product_id"):
        raise ValueError("shopify_product_id is required")
    bundle = _get_bundle(bundle_id)
    validate_unique_variants(bundle, [v["id"] for v in variants])
    values["shopify_product_id"] = extract_id(values["shopify_product_id"])
    with transaction.atomic():
        position = bundle.add_on_sets.count()
        add_on = AddOnSet.objects.create(bundle=bundle, position=position, **values)
        AddOnSetVariant.objects.bulk_create(_variant_rows(add_on, variants))
    return _after_commit(bundle, bundle.status, coordinator, trigger="add_on_created")


def update_add_on_set(add_on_id, coordinator=None, **values):
    validate_add_on_fields(values)
    add_on = AddOnSet.objects.select_related("bundle__shop").get(pk=add_on_id)
    for name, value in values.items():
        setattr(add_on, name, value)
    add_on.save()
    bundle = add_on.bundle
    return _after_commit(bundle, bundle.status, coordinator, trigger="add_on_updated")


def delete_add_on_set(add_on_id, coordinator=None):
    add_on = AddOnSet.objects.select_related("bundle__shop").get(pk=add_on_id)
    bundle = add_on.bundle
    add_on.delete()
    return _after_commit(bundle, bundle.status, coordinator, trigger="add_on_deleted")


def reorder_add_on_sets(bundle_id, ordered_ids, coordinator=None):
    bundle = _get_bundle(bundle_id)
    existing = set(bundle.add_on_sets.values_list("pk", flat=True))
    if set(ordered_ids) != existing:
        raise ValueError("ordered_ids must list every add-on of the bundle exactly once")
    with transaction.atomic():
        for position, add_on_id in enumerate(ordered_ids):
            AddOnSet.objects.filter(pk=add_on_id).update(position=position)
    return _after_commit(bundle, bundle.status, coordinator, trigger="add_ons_reordered")


def replace_add_on_variants(add_on_id, variants, coordinator=None):
    add_on = AddOnSet.objects.select_related("bundle__shop").get(pk=add_on_id)
    bundle = add_on.bundle
    validate_unique_variants(bundle, [v["id"] for v in variants], exclude_add_on_id=add_on.pk)
    with transaction.atomic():
        add_on.selected_variants.all().delete()
        AddOnSetVariant.objects.bulk_create(_variant_rows(add_on, variants))
    return _after_commit(bundle, bundle.status, coordinator, trigger="variants_replaced")


# ---------------------------------------------------------------------------
# Widget style
# ---------------------------------------------------------------------------

def update_widget_style(bundle_id, coordinator=None, **values):
    _check_fields(values, STYLE_ATTRS, "style")
    bundle = _get_bundle(bundle_id)
    style, _ = WidgetStyle.objects.get_or_create(bundle=bundle)
    for name, value in values.items():
        setattr(style, name, value)
    style.save()
    return _after_commit(bundle, bundle.status, coordinator, trigger="style_updated")


def reset_widget_style(bundle_id, coordinator=None):
    bundle = _get_bundle(bundle_id)
    with transaction.atomic():
        WidgetStyle.objects.filter(bundle=bundle).delete()
        WidgetStyle.objects.create(bundle=bundle)
    return _after_commit(bundle, bundle.status, coordinator, trigger="style_reset")


# ---------------------------------------------------------------------------
# Targeting
# ---------------------------------------------------------------------------

def _resource_type(item):
    resource_type = item.get("type", BundleTargetedItem.ResourceType.PRODUCT)
    _check_choice(resource_type, BundleTargetedItem.ResourceType, "resource type")
    return resource_type


def add_targeted_items(bundle_id, items, coordinator=None):
    """Target products or collections: ``[{"id", "type", "title", "image_url"}]``."""
    bundle = _get_bundle(bundle_id)
    rows = [
        BundleTargetedItem(
            bundle=bundle,
            shopify_resource_id=extract_id(item["id"]),
            shopify_resource_type=_resource_type(item),
            title=item.get("title"),
            image_url=item.get("image_url"),
        )
        for item in items
    ]
    BundleTargetedItem.objects.bulk_create(rows, ignore_conflicts=True)
    return _after_commit(bundle, bundle.status, coordinator, trigger="targeting_updated")


def remove_targeted_item(bundle_id, resource_id, coordinator=None):
    bundle = _get_bundle(bundle_id)
    bundle.targeted_items.filter(shopify_resource_id=extract_id(resource_id)).delete()
    return _after_commit(bundle, bundle.status, coordinator, trigger="targeting_updated")


def create_product_group(bundle_id, title, items=(), coordinator=None):
    if not (title or "").strip():
        raise ValueError("Product group title is required")
    bundle = _get_bundle(bundle_id)
    with transaction.atomic():
        group = ProductGroup.objects.create(
            bundle=bundle, title=title, position=bundle.product_groups.count()
        )
        _add_group_items(group, items)
    return _after_commit(bundle, bundle.status, coordinator, trigger="group_created")


def delete_product_group(group_id, coordinator=None):
    group = ProductGroup.objects.select_related("bundle__shop").get(pk=group_id)
    bundle = group.bundle
    group.delete()
    return _after_commit(bundle, bundle.status, coordinator, trigger="group_deleted")


def _add_group_items(group, items):
    start = group.items.count()
    ProductGroupItem.objects.bulk_create(
        [
            ProductGroupItem(
                product_group=group,
                shopify_resource_id=extract_id(item["id"]),
                shopify_resource_type=_resource_type(item),
                title=item.get("title"),
                image_url=item.get("image_url"),
                position=start + index,
            )
            for index, item in enumerate(items)
        ],
        ignore_conflicts=True,
    )


def add_product_group_items(group_id, items, coordinator=None):
    group = ProductGroup.objects.select_related("bundle__shop").get(pk=group_id)
    _add_group_items(group, items)
    bundle = group.bundle
    return _after_commit(bundle, bundle.status, coordinator, trigger="group_updated")


def remove_product_group_item(group_id, resource_id, coordinator=None):
    group = ProductGroup.objects.select_related("bundle__shop").get(pk=group_id)
    group.items.filter(shopify_resource_id=extract_id(resource_id)).delete()
    bundle = group.bundle
    return _after_commit(bundle, bundle.status, coordinator, trigger="group_updated")

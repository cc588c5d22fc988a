"""Decide which metafield slots a bundle's widget config is published to.

The targeting type picks one of three plan shapes. A deactivated bundle
gets a :class:`ClearPlan` wrapping the plan it would have had while
active, so clearing always covers the same slots publishing did.
"""

from dataclasses import dataclass
from typing import Tuple, Union

from ..models import Bundle, BundleTargetedItem
from ..utils import to_shopify_gid
from .shopify_client import PRODUCT_SLOT_KEY, SHOP_SLOT_KEY


@dataclass(frozen=True)
class GlobalPlan:
    """One shop-wide slot."""


@dataclass(frozen=True)
class PerProductPlan:
    product_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PerGroupPlan:
    # ((group_id, (product_gid, ...)), ...) in group order
    groups: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()

    @property
    def product_ids(self):
        return tuple(pid for _, product_ids in self.groups for pid in product_ids)


@dataclass(frozen=True)
class ClearPlan:
    plan: Union[GlobalPlan, PerProductPlan, PerGroupPlan]


def _is_product(item):
    return item.shopify_resource_type == BundleTargetedItem.ResourceType.PRODUCT


def _product_ids(items, seen):
    product_ids = []
    for item in items:
        if not _is_product(item):
            continue
        gid = to_shopify_gid("Product", item.shopify_resource_id)
        if gid in seen:
            continue
        seen.add(gid)
        product_ids.append(gid)
    return tuple(product_ids)


def _items(related):
    return list(related.all()) if hasattr(related, "all") else list(related)


def route(targeting_type, targeted_items=(), product_groups=()):
    """Return the publication plan for an ACTIVE bundle.

    Collections are dropped from both SPECIFIC and GROUPED plans: only
    products own a widget slot. A product listed in several groups is
    published with the first group's config.
    """
    if targeting_type == Bundle.TargetingType.SPECIFIC:
        return PerProductPlan(product_ids=_product_ids(targeted_items, set()))

    if targeting_type == Bundle.TargetingType.GROUPED:
        seen = set()
        groups = []
        for group in product_groups:
            product_ids = _product_ids(_items(group.items), seen)
            groups.append((str(group.pk), product_ids))
        return PerGroupPlan(groups=tuple(groups))

    return GlobalPlan()


def plan_for_bundle(bundle, targeted_items=(), product_groups=()):
    """Route *bundle*, wrapping the plan in :class:`ClearPlan` unless it is ACTIVE."""
    plan = route(bundle.targeting_type, targeted_items, product_groups)
    if not bundle.is_active:
        return ClearPlan(plan)
    return plan


def slots(plan, shop_gid):
    """List the ``(owner_id, key)`` slots *plan* touches."""
    if isinstance(plan, ClearPlan):
        plan = plan.plan
    if isinstance(plan, GlobalPlan):
        return [(shop_gid, SHOP_SLOT_KEY)]
    return [(product_id, PRODUCT_SLOT_KEY) for product_id in plan.product_ids]

"""Sync pass: republish every derived view of one bundle.

A pass reloads the bundle from the database, rebuilds its widget and
discount configs wholesale, writes the widget config to every slot the
publication plan names (or clears them when the bundle is not ACTIVE),
clears slots it published earlier that the plan no longer covers, and
pushes the discount config to the existing discount resource.

Each leg is isolated: a failing slot or discount call is recorded in the
:class:`SyncReport` and the pass carries on. Running a pass twice with no
change in between writes the same values twice.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

from datadog import statsd
from django.db.models import Prefetch

from ..models import AddOnSet, Bundle, BundleSyncLog, ProductGroup, WidgetStyle
from ..utils import to_shopify_gid
from .config_builder import (
    build_discount_config,
    build_widget_config,
    restrict_to_group,
)
from .discount_lifecycle import (
    DiscountLifecycleManager,
    currency_symbol_for,
)
from .publication import (
    ClearPlan,
    GlobalPlan,
    PerGroupPlan,
    plan_for_bundle,
    slots,
)
from .shopify_client import (
    PRODUCT_SLOT_KEY,
    SHOP_SLOT_KEY,
    DiscountGateway,
    MetafieldGateway,
    ShopifyAdminClient,
    is_transient,
)

logger = logging.getLogger(__name__)

WRITE = "write"
CLEAR = "clear"

SHOP_GID_PREFIX = "gid://shopify/Shop/"


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

@dataclass
class SlotResult:
    owner_id: str
    key: str
    action: str
    ok: bool = True
    error: Optional[str] = None
    transient: bool = False

    def to_dict(self):
        return {
            "owner_id": self.owner_id,
            "key": self.key,
            "action": self.action,
            "ok": self.ok,
            "error": self.error,
            "transient": self.transient,
        }


@dataclass
class SyncReport:
    bundle_id: int
    trigger: str = "manual"
    bundle_status: Optional[str] = None
    plan: Optional[str] = None
    slots: List[SlotResult] = field(default_factory=list)
    discount: Optional[object] = None
    errors: List[str] = field(default_factory=list)
    # set when an entry of ``errors`` came from a transient failure
    transient_errors: bool = False
    processing_time_ms: Optional[int] = None

    @property
    def failed_slots(self):
        return [slot for slot in self.slots if not slot.ok]

    @property
    def discount_error(self):
        if self.discount is not None and not self.discount.success:
            return self.discount.error
        return None

    @property
    def ok(self):
        return not self.failed_slots and not self.discount_error and not self.errors

    @property
    def retryable(self):
        """True when some failed leg may succeed on a later pass."""
        if self.transient_errors or any(slot.transient for slot in self.failed_slots):
            return True
        return self.discount_error is not None and self.discount.transient

    @property
    def log_status(self):
        if self.ok:
            return BundleSyncLog.Status.SUCCESS
        discount_ok = self.discount is not None and self.discount.success
        if self.errors or (
            len(self.failed_slots) == len(self.slots) and not discount_ok
        ):
            return BundleSyncLog.Status.FAILED
        return BundleSyncLog.Status.PARTIAL

    def to_dict(self):
        return {
            "bundle_id": self.bundle_id,
            "trigger": self.trigger,
            "bundle_status": self.bundle_status,
            "plan": self.plan,
            "ok": self.ok,
            "slots": [slot.to_dict() for slot in self.slots],
            "discount": self.discount.to_dict() if self.discount is not None else None,
            "discount_error": self.discount_error,
            "errors": list(self.errors),
            "processing_time_ms": self.processing_time_ms,
        }


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------

def load_bundle(bundle_id):
    """Fetch *bundle_id* with everything a sync pass reads, in one snapshot."""
    return (
        Bundle.objects.select_related("shop")
        .prefetch_related(
            Prefetch(
                "add_on_sets",
                queryset=AddOnSet.objects.prefetch_related("selected_variants"),
            ),
            "targeted_items",
            Prefetch(
                "product_groups",
                queryset=ProductGroup.objects.prefetch_related("items"),
            ),
        )
        .get(pk=bundle_id)
    )


def _widget_style(bundle):
    try:
        return bundle.widget_style
    except WidgetStyle.DoesNotExist:
        return None


def _slot_key(owner_id):
    return SHOP_SLOT_KEY if owner_id.startswith(SHOP_GID_PREFIX) else PRODUCT_SLOT_KEY


class SyncCoordinator:
    """Run sync passes for the bundles of one shop."""

    def __init__(self, metafields, lifecycle):
        self.metafields = metafields
        self.lifecycle = lifecycle

    @classmethod
    def for_shop(cls, shop_config, session=None):
        client = ShopifyAdminClient(shop_config, session=session)
        return cls(
            MetafieldGateway(client),
            DiscountLifecycleManager(DiscountGateway(client)),
        )

    def sync(self, bundle_id, trigger="manual", update_discount=True):
        """Run one sync pass for *bundle_id* and return its :class:`SyncReport`.

        Args:
            bundle_id: primary key of the bundle.
            trigger: free-form label stored in the audit log.
            update_discount: ``False`` when the caller has just created or
                updated the discount with the same config.
        """
        start = time.monotonic()
        report = SyncReport(bundle_id=bundle_id, trigger=trigger)

        try:
            bundle = load_bundle(bundle_id)
        except Bundle.DoesNotExist:
            logger.warning("Sync skipped: bundle %s does not exist", bundle_id)
            report.errors.append(f"Bundle {bundle_id} does not exist")
            return report

        report.bundle_status = bundle.status
        targeted_items = list(bundle.targeted_items.all())
        product_groups = list(bundle.product_groups.all())
        plan = plan_for_bundle(bundle, targeted_items, product_groups)
        report.plan = type(plan.plan if isinstance(plan, ClearPlan) else plan).__name__
        logger.info(
            "Sync pass started for bundle %s (status=%s, plan=%s, trigger=%s)",
            bundle.pk,
            bundle.status,
            report.plan,
            trigger,
        )

        if isinstance(plan, ClearPlan):
            published = self._clear(bundle, plan, report)
            if bundle.external_discount_id:
                report.discount = self.lifecycle.retire(bundle)
        else:
            published = self._publish(bundle, plan, report)
            if update_discount and bundle.external_discount_id:
                discount_config = build_discount_config(
                    bundle, list(bundle.add_on_sets.all()), currency_symbol_for(bundle)
                )
                report.discount = self.lifecycle.sync_discount(bundle, discount_config)

        if published != list(bundle.published_owner_ids or []):
            bundle.published_owner_ids = published
            bundle.save(update_fields=["published_owner_ids"])

        report.processing_time_ms = int((time.monotonic() - start) * 1000)
        self._finish(bundle, report)
        return report

    # -- publish / clear ----------------------------------------------------

    def _shop_gid(self, report):
        try:
            return self.metafields.get_shop_gid()
        except Exception as exc:
            logger.exception("Could not resolve shop id")
            report.errors.append(f"Could not resolve shop id: {exc}")
            report.transient_errors = report.transient_errors or is_transient(exc)
            return None

    def _resolve_slots(self, plan, report):
        needs_shop = isinstance(plan.plan if isinstance(plan, ClearPlan) else plan, GlobalPlan)
        shop_gid = self._shop_gid(report) if needs_shop else None
        if needs_shop and shop_gid is None:
            return []
        return slots(plan, shop_gid)

    def widget_config_for(self, bundle):
        add_on_sets = list(bundle.add_on_sets.all())
        product_ids = [to_shopify_gid("Product", a.shopify_product_id) for a in add_on_sets]
        product_handles = {}
        if product_ids:
            try:
                product_handles = self.metafields.fetch_product_handles(product_ids)
            except Exception:
                logger.warning(
                    "Product handles unavailable for bundle %s", bundle.pk, exc_info=True
                )
        return build_widget_config(
            bundle,
            add_on_sets,
            style=_widget_style(bundle),
            product_handles=product_handles,
            product_groups=list(bundle.product_groups.all()),
            currency_symbol=currency_symbol_for(bundle),
        )

    def _publish(self, bundle, plan, report):
        widget_config = self.widget_config_for(bundle)

        if isinstance(plan, PerGroupPlan):
            for group_id, product_ids in plan.groups:
                if not product_ids:
                    continue
                payload = restrict_to_group(widget_config, group_id, product_ids).to_dict()
                self._write(product_ids, PRODUCT_SLOT_KEY, payload, report)
        else:
            payload = widget_config.to_dict()
            for owner_id, key in self._resolve_slots(plan, report):
                self._write([owner_id], key, payload, report)

        current = [slot.owner_id for slot in report.slots]
        if isinstance(plan, GlobalPlan) and not current:
            # Shop id unresolved: leave the previously published shop slot alone.
            current = [
                owner_id
                for owner_id in bundle.published_owner_ids or []
                if _slot_key(owner_id) == SHOP_SLOT_KEY
            ]
        stale = [
            owner_id
            for owner_id in bundle.published_owner_ids or []
            if owner_id not in current
        ]
        still_published = self._release(bundle, stale, report)
        return current + still_published

    def _clear(self, bundle, plan, report):
        owners = [owner_id for owner_id, _ in self._resolve_slots(plan, report)]
        for owner_id in bundle.published_owner_ids or []:
            if owner_id not in owners:
                owners.append(owner_id)
        return self._release(bundle, owners, report)

    def _claimants(self, bundle):
        """Map product slots published by other ACTIVE bundles to their claimant.

        When several bundles list the same product, the most recently
        updated one wins, as for the shop slot.
        """
        claimants = {}
        others = (
            Bundle.objects.filter(shop_id=bundle.shop_id, status=Bundle.Status.ACTIVE)
            .exclude(pk=bundle.pk)
            .order_by("-updated_at", "-pk")
            .values_list("pk", "published_owner_ids")
        )
        for bundle_id, owner_ids in others:
            for owner_id in owner_ids or []:
                if _slot_key(owner_id) == PRODUCT_SLOT_KEY:
                    claimants.setdefault(owner_id, bundle_id)
        return claimants

    def _release(self, bundle, owner_ids, report):
        """Clear *owner_ids* of this bundle's data; return those still holding it.

        A product slot another ACTIVE bundle also publishes to is rewritten
        with that bundle's config instead of being deleted.
        """
        remaining = []
        product_ids = []
        handed_over = {}
        claimants = None
        for owner_id in owner_ids:
            if _slot_key(owner_id) == SHOP_SLOT_KEY:
                if not self._hand_over_shop_slot(bundle, owner_id, report):
                    remaining.append(owner_id)
                continue
            if claimants is None:
                claimants = self._claimants(bundle)
            claimant_id = claimants.get(owner_id)
            if claimant_id is None:
                product_ids.append(owner_id)
            else:
                handed_over.setdefault(claimant_id, []).append(owner_id)
        if product_ids:
            failed = self._delete(product_ids, PRODUCT_SLOT_KEY, report)
            remaining.extend(failed)
        for claimant_id, claimed in handed_over.items():
            remaining.extend(self._hand_over_product_slots(bundle, claimant_id, claimed, report))
        return remaining

    def _hand_over_product_slots(self, bundle, claimant_id, product_ids, report):
        """Rewrite *product_ids* with the claimant's config; return the failures."""
        claimant = load_bundle(claimant_id)
        plan = plan_for_bundle(
            claimant,
            list(claimant.targeted_items.all()),
            list(claimant.product_groups.all()),
        )
        widget_config = self.widget_config_for(claimant)
        group_of = {}
        if isinstance(plan, PerGroupPlan):
            for group_id, group_product_ids in plan.groups:
                for product_id in group_product_ids:
                    group_of[product_id] = (group_id, group_product_ids)

        failed = []
        batches = {}
        for product_id in product_ids:
            batches.setdefault(group_of.get(product_id), []).append(product_id)
        for group, owners in batches.items():
            if group is None:
                payload = widget_config.to_dict()
            else:
                payload = restrict_to_group(widget_config, *group).to_dict()
            failed.extend(self._write(owners, PRODUCT_SLOT_KEY, payload, report))
        handed = [product_id for product_id in product_ids if product_id not in failed]
        if handed:
            logger.info(
                "Product slots %s handed over from bundle %s to bundle %s",
                handed,
                bundle.pk,
                claimant.pk,
            )
        return failed

    def _hand_over_shop_slot(self, bundle, shop_gid, report):
        """Give the shop slot to another ACTIVE global bundle, or clear it."""
        successor = (
            Bundle.objects.filter(
                shop_id=bundle.shop_id,
                status=Bundle.Status.ACTIVE,
                targeting_type=Bundle.TargetingType.ALL,
            )
            .exclude(pk=bundle.pk)
            .order_by("-updated_at", "-pk")
            .first()
        )
        if successor is None:
            return not self._delete([shop_gid], SHOP_SLOT_KEY, report)

        successor = load_bundle(successor.pk)
        payload = self.widget_config_for(successor).to_dict()
        if self._write([shop_gid], SHOP_SLOT_KEY, payload, report):
            return False
        logger.info(
            "Shop slot handed over from bundle %s to bundle %s", bundle.pk, successor.pk
        )
        published = list(successor.published_owner_ids or [])
        if shop_gid not in published:
            successor.published_owner_ids = published + [shop_gid]
            successor.save(update_fields=["published_owner_ids"])
        return True

    # -- gateway calls ------------------------------------------------------

    def _write(self, owner_ids, key, payload, report):
        """Write *payload* to each owner; return the owners that failed."""
        return self._record(
            owner_ids, key, WRITE, report, lambda: self.metafields.write(owner_ids, key, payload)
        )

    def _delete(self, owner_ids, key, report):
        return self._record(
            owner_ids, key, CLEAR, report, lambda: self.metafields.delete(owner_ids, key)
        )

    def _record(self, owner_ids, key, action, report, call):
        try:
            results = call()
        except Exception as exc:
            logger.exception("Metafield %s failed for %d owners", action, len(owner_ids))
            results = {owner_id: exc for owner_id in owner_ids}

        failed = []
        for owner_id in owner_ids:
            error = results.get(owner_id)
            transient = isinstance(error, Exception) and is_transient(error)
            if error is not None:
                error = str(error)
            report.slots.append(
                SlotResult(
                    owner_id=owner_id,
                    key=key,
                    action=action,
                    ok=error is None,
                    error=error,
                    transient=transient,
                )
            )
            if error is not None:
                failed.append(owner_id)
                logger.error("Metafield %s failed for %s.%s: %s", action, owner_id, key, error)
                statsd.increment(
                    "addon_bundles.sync.slot_failed", tags=[f"action:{action}"]
                )
        return failed

    # -- bookkeeping --------------------------------------------------------

    def _finish(self, bundle, report):
        status = "ok" if report.ok else "partial"
        statsd.increment("addon_bundles.sync.pass", tags=[f"status:{status}"])
        statsd.histogram("addon_bundles.sync.duration_ms", report.processing_time_ms)
        BundleSyncLog.objects.create(
            bundle_id_snapshot=bundle.pk,
            shop_domain=bundle.shop.shopify_domain,
            trigger=report.trigger,
            status=report.log_status,
            report=report.to_dict(),
            discount_error=report.discount_error or "",
            processing_time_ms=report.processing_time_ms,
        )
        if report.ok:
            logger.info(
                "Sync pass finished for bundle %s: %d slots in %dms",
                bundle.pk,
                len(report.slots),
                report.processing_time_ms,
            )
        else:
            logger.warning(
                "Sync pass for bundle %s finished with errors: %d failed slots, discount_error=%s",
                bundle.pk,
                len(report.failed_slots),
                report.discount_error,
            )

"""Tie the bundle's external discount resource to its status transitions.

The action taken depends on the transition ``(old_status, new_status)``
and on whether a discount already exists, never on the new status alone:
an already active bundle that is edited must update its discount, not
create a second one.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from datadog import statsd
from django.utils import timezone

from ..models import Bundle
from .config_builder import build_discount_config
from .shopify_client import is_transient

logger = logging.getLogger(__name__)

CREATE = "create"
UPDATE = "update"
DELETE = "delete"
NOOP = "noop"


def _build_transitions():
    table = {}
    statuses = list(Bundle.Status.values)
    active = Bundle.Status.ACTIVE
    for old in statuses:
        for new in statuses:
            if new == active:
                # Activation or in-place edit while active.
                table[(old, new, False)] = CREATE
                table[(old, new, True)] = UPDATE
            else:
                # Deactivation. A discount left behind on an inactive
                # bundle is removed as well.
                table[(old, new, False)] = NOOP
                table[(old, new, True)] = DELETE
    return table


TRANSITIONS = _build_transitions()


def transition_action(old_status, new_status, has_discount):
    """Look up the action for a status transition; unknown statuses are a no-op."""
    return TRANSITIONS.get((old_status, new_status, bool(has_discount)), NOOP)


@dataclass
class LifecycleResult:
    action: str
    success: bool = True
    discount_id: Optional[str] = None
    error: Optional[str] = None
    transient: bool = False

    def to_dict(self):
        return {
            "action": self.action,
            "success": self.success,
            "discount_id": self.discount_id,
            "error": self.error,
            "transient": self.transient,
        }


def currency_symbol_for(bundle):
    return (bundle.shop.extra_data or {}).get("currency_symbol") or "$"


def load_discount_config(bundle):
    """Build the discount config from freshly loaded add-on sets."""
    add_on_sets = list(bundle.add_on_sets.prefetch_related("selected_variants"))
    return build_discount_config(bundle, add_on_sets, currency_symbol_for(bundle))


class DiscountLifecycleManager:
    """Create, update and delete a bundle's discount via a ``DiscountGateway``."""

    def __init__(self, discounts):
        self.discounts = discounts

    def transition(self, bundle, old_status, discount_config=None):
        """Apply the action for ``old_status → bundle.status``.

        ``external_discount_id`` is saved on the bundle as soon as a
        create or delete succeeds. Failures are returned, not raised.
        """
        action = transition_action(
            old_status, bundle.status, bool(bundle.external_discount_id)
        )
        if action == NOOP:
            return LifecycleResult(action=NOOP, discount_id=bundle.external_discount_id)
        if action == DELETE:
            return self.retire(bundle)
        return self._publish(bundle, action, discount_config)

    def sync_discount(self, bundle, discount_config=None):
        """Push the current config to an existing discount (ACTIVE → ACTIVE)."""
        if not bundle.external_discount_id:
            return LifecycleResult(action=NOOP)
        return self._publish(bundle, UPDATE, discount_config)

    def retire(self, bundle):
        """Delete the discount, if any, and clear ``external_discount_id``."""
        discount_id = bundle.external_discount_id
        if not discount_id:
            return LifecycleResult(action=NOOP)
        try:
            self.discounts.delete(discount_id)
        except Exception as exc:
            return self._failed(bundle, DELETE, exc, discount_id)

        bundle.external_discount_id = None
        bundle.save(update_fields=["external_discount_id", "updated_at"])
        logger.info("Deleted discount %s for bundle %s", discount_id, bundle.pk)
        self._record(DELETE, "ok")
        return LifecycleResult(action=DELETE)

    def on_delete(self, bundle):
        """Remove the discount of a bundle that is about to be deleted."""
        return self.retire(bundle)

    def _publish(self, bundle, action, discount_config):
        if discount_config is None:
            discount_config = load_discount_config(bundle)
        payload = discount_config.to_dict()
        starts_at = timezone.now().isoformat()
        try:
            if action == CREATE:
                discount_id = self.discounts.create(bundle, payload, starts_at)
            else:
                discount_id = bundle.external_discount_id
                self.discounts.update(discount_id, bundle, payload, starts_at)
        except Exception as exc:
            return self._failed(bundle, action, exc, bundle.external_discount_id)

        if action == CREATE:
            bundle.external_discount_id = discount_id
            bundle.save(update_fields=["external_discount_id", "updated_at"])
        logger.info(
            "Discount %s %sd for bundle %s (%d add-ons)",
            discount_id,
            action,
            bundle.pk,
            len(discount_config.add_ons),
        )
        self._record(action, "ok")
        return LifecycleResult(action=action, discount_id=discount_id)

    def _failed(self, bundle, action, exc, discount_id):
        logger.exception(
            "Failed to %s discount for bundle %s (shop=%s)",
            action,
            bundle.pk,
            bundle.shop.shopify_domain,
        )
        self._record(action, "error")
        return LifecycleResult(
            action=action,
            success=False,
            discount_id=discount_id,
            error=f"Failed to {action} discount: {exc}",
            transient=is_transient(exc),
        )

    @staticmethod
    def _record(action, status):
        statsd.increment(
            "addon_bundles.discount.lifecycle",
            tags=[f"action:{action}", f"status:{status}"],
        )

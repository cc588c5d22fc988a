"""Tests for the discount lifecycle transition table and manager."""

import pytest

from addon_bundles.models import Bundle
from addon_bundles.services.discount_lifecycle import (
    CREATE,
    DELETE,
    NOOP,
    UPDATE,
    DiscountLifecycleManager,
    transition_action,
)

from .conftest import make_add_on, make_bundle

pytestmark = pytest.mark.django_db

DRAFT = Bundle.Status.DRAFT
ACTIVE = Bundle.Status.ACTIVE
ARCHIVED = Bundle.Status.ARCHIVED


class TestTransitionAction:
    @pytest.mark.parametrize(
        "old, new, has_discount, expected",
        [
            (DRAFT, ACTIVE, False, CREATE),
            (ARCHIVED, ACTIVE, False, CREATE),
            (DRAFT, ACTIVE, True, UPDATE),
            (ACTIVE, ACTIVE, True, UPDATE),
            (ACTIVE, ACTIVE, False, CREATE),
            (ACTIVE, DRAFT, True, DELETE),
            (ACTIVE, ARCHIVED, True, DELETE),
            (ACTIVE, ARCHIVED, False, NOOP),
            (DRAFT, DRAFT, False, NOOP),
            (DRAFT, ARCHIVED, True, DELETE),
        ],
    )
    def test_table(self, old, new, has_discount, expected):
        assert transition_action(old, new, has_discount) == expected

    def test_unknown_status_is_noop(self):
        assert transition_action("PAUSED", ACTIVE, False) == NOOP


class TestDiscountLifecycleManager:
    def test_activation_creates_discount(self, shop, fake_discounts):
        bundle = make_bundle(shop, status=ACTIVE)
        make_add_on(bundle)

        result = DiscountLifecycleManager(fake_discounts).transition(bundle, DRAFT)

        assert result.success
        assert result.action == CREATE
        bundle.refresh_from_db()
        assert bundle.external_discount_id == result.discount_id
        config = fake_discounts.discounts[result.discount_id]["config"]
        assert config["bundleId"] == str(bundle.pk)
        assert config["addOns"][0]["targetVariantIds"] == ["gid://shopify/ProductVariant/1001"]

    def test_reactivation_updates_instead_of_duplicating(self, shop, fake_discounts):
        bundle = make_bundle(shop, status=ACTIVE)
        manager = DiscountLifecycleManager(fake_discounts)
        manager.transition(bundle, DRAFT)

        result = manager.transition(bundle, ACTIVE)

        assert result.action == UPDATE
        assert len(fake_discounts.discounts) == 1
        assert fake_discounts.calls == ["create", "update"]

    def test_deactivation_deletes_and_clears_id(self, shop, fake_discounts):
        bundle = make_bundle(shop, status=ACTIVE)
        manager = DiscountLifecycleManager(fake_discounts)
        manager.transition(bundle, DRAFT)

        bundle.status = ARCHIVED
        bundle.save()
        result = manager.transition(bundle, ACTIVE)

        assert result.action == DELETE
        assert fake_discounts.discounts == {}
        bundle.refresh_from_db()
        assert bundle.external_discount_id is None

    def test_create_failure_is_reported_not_raised(self, shop, fake_discounts):
        fake_discounts.fail_on.add("create")
        bundle = make_bundle(shop, status=ACTIVE)

        result = DiscountLifecycleManager(fake_discounts).transition(bundle, DRAFT)

        assert not result.success
        assert "create" in result.error
        bundle.refresh_from_db()
        assert bundle.external_discount_id is None

    def test_delete_failure_keeps_id(self, shop, fake_discounts):
        bundle = make_bundle(shop, status=DRAFT, external_discount_id="gid://shopify/DiscountAutomaticNode/9")
        fake_discounts.fail_on.add("delete")

        result = DiscountLifecycleManager(fake_discounts).on_delete(bundle)

        assert not result.success
        bundle.refresh_from_db()
        assert bundle.external_discount_id == "gid://shopify/DiscountAutomaticNode/9"

    def test_on_delete_without_discount_is_noop(self, shop, fake_discounts):
        bundle = make_bundle(shop)
        assert DiscountLifecycleManager(fake_discounts).on_delete(bundle).action == NOOP
        assert fake_discounts.calls == []

    def test_lifecycle_metric(self, shop, fake_discounts, mocker):
        statsd = mocker.patch("addon_bundles.services.discount_lifecycle.statsd")
        bundle = make_bundle(shop, status=ACTIVE)
        DiscountLifecycleManager(fake_discounts).transition(bundle, DRAFT)
        statsd.increment.assert_called_once_with(
            "addon_bundles.discount.lifecycle", tags=["action:create", "status:ok"]
        )

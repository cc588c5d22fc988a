"""Tests for publication routing."""

from types import SimpleNamespace

from addon_bundles.models import Bundle
from addon_bundles.services.publication import (
    ClearPlan,
    GlobalPlan,
    PerGroupPlan,
    PerProductPlan,
    plan_for_bundle,
    route,
    slots,
)

SHOP_GID = "gid://shopify/Shop/1"


def _item(resource_id, resource_type="Product"):
    return SimpleNamespace(shopify_resource_id=resource_id, shopify_resource_type=resource_type)


def _group(pk, *items):
    return SimpleNamespace(pk=pk, items=list(items))


class TestRoute:
    def test_all_products_is_global(self):
        assert route(Bundle.TargetingType.ALL) == GlobalPlan()

    def test_specific_excludes_collections(self):
        plan = route(
            Bundle.TargetingType.SPECIFIC,
            [_item("1"), _item("2", "Collection"), _item("gid://shopify/Product/3")],
        )
        assert plan == PerProductPlan(
            product_ids=("gid://shopify/Product/1", "gid://shopify/Product/3")
        )

    def test_specific_deduplicates(self):
        plan = route(Bundle.TargetingType.SPECIFIC, [_item("1"), _item("1")])
        assert plan.product_ids == ("gid://shopify/Product/1",)

    def test_grouped(self):
        plan = route(
            Bundle.TargetingType.GROUPED,
            product_groups=[
                _group(10, _item("1"), _item("2")),
                _group(11, _item("3"), _item("9", "Collection")),
            ],
        )
        assert plan == PerGroupPlan(
            groups=(
                ("10", ("gid://shopify/Product/1", "gid://shopify/Product/2")),
                ("11", ("gid://shopify/Product/3",)),
            )
        )

    def test_product_in_two_groups_stays_with_first(self):
        plan = route(
            Bundle.TargetingType.GROUPED,
            product_groups=[_group(1, _item("5")), _group(2, _item("5"), _item("6"))],
        )
        assert plan.groups == (
            ("1", ("gid://shopify/Product/5",)),
            ("2", ("gid://shopify/Product/6",)),
        )

    def test_empty_specific_targets_nothing(self):
        assert slots(route(Bundle.TargetingType.SPECIFIC, []), SHOP_GID) == []


class TestPlanForBundle:
    def test_active_bundle_gets_plain_plan(self):
        bundle = Bundle(status=Bundle.Status.ACTIVE, targeting_type=Bundle.TargetingType.ALL)
        assert plan_for_bundle(bundle) == GlobalPlan()

    def test_inactive_bundle_clears_the_same_slots(self):
        items = [_item("1"), _item("2")]
        active = Bundle(status=Bundle.Status.ACTIVE, targeting_type=Bundle.TargetingType.SPECIFIC)
        draft = Bundle(status=Bundle.Status.DRAFT, targeting_type=Bundle.TargetingType.SPECIFIC)

        clear = plan_for_bundle(draft, items)

        assert isinstance(clear, ClearPlan)
        assert slots(clear, SHOP_GID) == slots(plan_for_bundle(active, items), SHOP_GID)


class TestSlots:
    def test_global_uses_shop_slot(self):
        assert slots(GlobalPlan(), SHOP_GID) == [(SHOP_GID, "global_config")]

    def test_products_use_product_slot(self):
        plan = PerProductPlan(product_ids=("gid://shopify/Product/1",))
        assert slots(plan, SHOP_GID) == [("gid://shopify/Product/1", "config")]

    def test_groups_flatten(self):
        plan = PerGroupPlan(groups=(("1", ("a",)), ("2", ("b", "c"))))
        assert [owner for owner, _ in slots(plan, SHOP_GID)] == ["a", "b", "c"]

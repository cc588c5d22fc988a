"""Shared fixtures: Dramatiq stub broker, shop/bundle factories, fake Shopify gateways."""

import decimal
import json

import dramatiq
import pytest
from dramatiq.brokers.stub import StubBroker

# Actors bind to the global broker at import time, so it is replaced before
# any test module imports addon_bundles.tasks.
stub_broker = StubBroker()
stub_broker.emit_after("process_boot")
dramatiq.set_broker(stub_broker)

from addon_bundles.models import (  # noqa: E402
    AddOnSet,
    AddOnSetVariant,
    Bundle,
    BundleTargetedItem,
    ProductGroup,
    ProductGroupItem,
    ShopifyShopConfig,
    WidgetStyle,
)
from addon_bundles.services.discount_lifecycle import DiscountLifecycleManager  # noqa: E402
from addon_bundles.services.shopify_client import ShopifyAPIError  # noqa: E402
from addon_bundles.services.sync import SyncCoordinator  # noqa: E402

SHOP_DOMAIN = "test-shop.myshopify.com"
SHOP_GID = "gid://shopify/Shop/1"


# ---------------------------------------------------------------------------
# Fake Shopify gateways
# ---------------------------------------------------------------------------


class FakeMetafieldGateway:
    """In-memory stand-in for ``MetafieldGateway``.

    ``slots`` maps ``(owner_id, key)`` to the decoded JSON value. Owners in
    ``fail_owners`` reject every write and delete.
    """

    def __init__(self):
        self.slots = {}
        self.handles = {}
        self.fail_owners = set()
        self.fail_shop_gid = False
        self.calls = []

    def get_shop_gid(self):
        if self.fail_shop_gid:
            raise ShopifyAPIError("shop query failed", status_code=503)
        return SHOP_GID

    def fetch_product_handles(self, product_ids):
        return {pid: self.handles[pid] for pid in product_ids if pid in self.handles}

    def write(self, owner_ids, key, value):
        self.calls.append(("write", tuple(owner_ids), key))
        results = {}
        for owner_id in owner_ids:
            if owner_id in self.fail_owners:
                results[owner_id] = "Write rejected"
                continue
            self.slots[(owner_id, key)] = json.loads(json.dumps(value))
            results[owner_id] = None
        return results

    def delete(self, owner_ids, key):
        self.calls.append(("delete", tuple(owner_ids), key))
        results = {}
        for owner_id in owner_ids:
            if owner_id in self.fail_owners:
                results[owner_id] = "Delete rejected"
                continue
            self.slots.pop((owner_id, key), None)
            results[owner_id] = None
        return results


class FakeDiscountGateway:
    """In-memory stand-in for ``DiscountGateway``.

    ``discounts`` maps discount GID to ``{"title", "config"}``. Actions
    listed in ``fail_on`` raise ``ShopifyAPIError``.
    """

    def __init__(self):
        self.discounts = {}
        self.fail_on = set()
        self.calls = []
        self._next_id = 1

    def _maybe_fail(self, action):
        self.calls.append(action)
        if action in self.fail_on:
            raise ShopifyAPIError(f"{action} rejected", status_code=422)

    def create(self, bundle, discount_config, starts_at):
        self._maybe_fail("create")
        discount_id = f"gid://shopify/DiscountAutomaticNode/{self._next_id}"
        self._next_id += 1
        self.discounts[discount_id] = {
            "title": f"Add-On Bundle: {bundle.title}",
            "config": json.loads(json.dumps(discount_config)),
        }
        return discount_id

    def update(self, discount_id, bundle, discount_config, starts_at):
        self._maybe_fail("update")
        if discount_id not in self.discounts:
            raise ShopifyAPIError(f"Discount {discount_id} does not exist")
        self.discounts[discount_id] = {
            "title": f"Add-On Bundle: {bundle.title}",
            "config": json.loads(json.dumps(discount_config)),
        }

    def delete(self, discount_id):
        self._maybe_fail("delete")
        self.discounts.pop(discount_id, None)


@pytest.fixture(autouse=True)
def mute_statsd(mocker):
    """Keep datadog from emitting UDP packets during tests."""
    for module in (
        "addon_bundles.services.sync",
        "addon_bundles.services.discount_lifecycle",
        "addon_bundles.tasks",
    ):
        mocker.patch(f"{module}.statsd")


@pytest.fixture
def broker():
    stub_broker.flush_all()
    return stub_broker


@pytest.fixture
def fake_metafields():
    return FakeMetafieldGateway()


@pytest.fixture
def fake_discounts():
    return FakeDiscountGateway()


@pytest.fixture
def coordinator(fake_metafields, fake_discounts):
    return SyncCoordinator(fake_metafields, DiscountLifecycleManager(fake_discounts))


@pytest.fixture
def patch_coordinator(mocker, coordinator):
    """Make ``SyncCoordinator.for_shop`` return the fake-backed coordinator."""
    mocker.patch.object(SyncCoordinator, "for_shop", return_value=coordinator)
    return coordinator


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def make_shop(**overrides):
    defaults = {
        "shopify_domain": SHOP_DOMAIN,
        "api_access_token": "shpat_test",
        "shop_gid": SHOP_GID,
        "extra_data": {"discount_function_id": "gid://shopify/ShopifyFunction/1"},
    }
    defaults.update(overrides)
    return ShopifyShopConfig.objects.create(**defaults)


def make_bundle(shop, with_style=True, **overrides):
    defaults = {
        "title": "Camera Kit",
        "status": Bundle.Status.DRAFT,
        "targeting_type": Bundle.TargetingType.ALL,
    }
    defaults.update(overrides)
    bundle = Bundle.objects.create(shop=shop, **defaults)
    if with_style:
        WidgetStyle.objects.create(bundle=bundle)
    return bundle


def make_add_on(bundle, variant_ids=("1001",), **overrides):
    defaults = {
        "shopify_product_id": "501",
        "product_title": "Lens Cap",
        "discount_type": AddOnSet.DiscountType.PERCENTAGE,
        "discount_value": decimal.Decimal("20"),
        "max_quantity": 3,
    }
    defaults.update(overrides)
    add_on = AddOnSet.objects.create(bundle=bundle, **defaults)
    for position, variant_id in enumerate(variant_ids):
        AddOnSetVariant.objects.create(
            add_on_set=add_on,
            shopify_variant_id=variant_id,
            variant_title=f"Variant {variant_id}",
            variant_price=decimal.Decimal("10.00"),
            position=position,
        )
    return add_on


def target(bundle, resource_id, resource_type=BundleTargetedItem.ResourceType.PRODUCT):
    return BundleTargetedItem.objects.create(
        bundle=bundle,
        shopify_resource_id=resource_id,
        shopify_resource_type=resource_type,
    )


def make_group(bundle, title, product_ids, position=0):
    group = ProductGroup.objects.create(bundle=bundle, title=title, position=position)
    for index, product_id in enumerate(product_ids):
        ProductGroupItem.objects.create(
            product_group=group, shopify_resource_id=product_id, position=index
        )
    return group


@pytest.fixture
def shop():
    return make_shop()

"""Tests for the add-on bundle models."""

import decimal

import pytest
from django.db import IntegrityError

from addon_bundles.models import (
    AddOnSet,
    AddOnSetVariant,
    Bundle,
    BundleSyncLog,
    ShopifyShopConfig,
    WidgetStyle,
)

from .conftest import make_add_on, make_bundle, make_shop

pytestmark = pytest.mark.django_db


class TestShopifyShopConfig:
    """Tests for the ShopifyShopConfig model."""

    def test_create_config(self):
        config = ShopifyShopConfig.objects.create(
            shopify_domain="store.myshopify.com",
            api_access_token="shpat_abc123",
        )
        assert config.is_active is True
        assert config.api_version == "2025-01"
        assert config.shop_gid == ""
        assert config.extra_data == {}
        assert str(config) == "store.myshopify.com"

    def test_domain_is_unique(self):
        make_shop()
        with pytest.raises(IntegrityError):
            make_shop()


class TestBundle:
    def test_defaults(self, shop):
        bundle = Bundle.objects.create(shop=shop, title="Kit")
        assert bundle.status == Bundle.Status.DRAFT
        assert bundle.selection_mode == Bundle.SelectionMode.MULTIPLE
        assert bundle.targeting_type == Bundle.TargetingType.ALL
        assert bundle.combine_with_product_discounts is True
        assert bundle.external_discount_id is None
        assert bundle.published_owner_ids == []
        assert bundle.is_active is False
        assert str(bundle) == "Kit [DRAFT]"

    def test_is_active(self, shop):
        assert make_bundle(shop, status=Bundle.Status.ACTIVE).is_active

    def test_cascade_delete(self, shop):
        bundle = make_bundle(shop)
        make_add_on(bundle, variant_ids=("1", "2"))
        bundle.delete()
        assert not AddOnSet.objects.exists()
        assert not AddOnSetVariant.objects.exists()
        assert not WidgetStyle.objects.exists()


class TestAddOnSet:
    def test_free_gift_drops_value_and_default_selection(self, shop):
        add_on = make_add_on(
            make_bundle(shop),
            discount_type=AddOnSet.DiscountType.FREE_GIFT,
            discount_value=decimal.Decimal("15"),
            is_default_selected=True,
        )
        add_on.refresh_from_db()
        assert add_on.discount_value is None
        assert add_on.is_default_selected is False

    def test_ordering_by_position(self, shop):
        bundle = make_bundle(shop)
        second = make_add_on(bundle, variant_ids=("1",), position=1)
        first = make_add_on(bundle, variant_ids=("2",), position=0)
        assert list(bundle.add_on_sets.all()) == [first, second]

    def test_variant_unique_per_add_on(self, shop):
        add_on = make_add_on(make_bundle(shop), variant_ids=("1001",))
        with pytest.raises(IntegrityError):
            AddOnSetVariant.objects.create(add_on_set=add_on, shopify_variant_id="1001")


class TestWidgetStyle:
    def test_defaults(self, shop):
        style = make_bundle(shop).widget_style
        assert style.background_color == "#ffffff"
        assert style.layout_type == WidgetStyle.LayoutType.LIST
        assert style.font_size == 14

    def test_one_per_bundle(self, shop):
        bundle = make_bundle(shop)
        with pytest.raises(IntegrityError):
            WidgetStyle.objects.create(bundle=bundle)


class TestBundleSyncLog:
    def test_str(self):
        log = BundleSyncLog.objects.create(
            bundle_id_snapshot=7, shop_domain="s.myshopify.com", trigger="admin"
        )
        assert str(log) == "sync bundle=7 [success] (admin)"

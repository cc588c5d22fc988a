"""Tests for the Admin GraphQL client and the metafield/discount gateways."""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import requests

from addon_bundles.services.shopify_client import (
    DISCOUNT_METAFIELD_NAMESPACE,
    DiscountGateway,
    MetafieldGateway,
    ShopifyAdminClient,
    ShopifyAPIError,
    ShopifyUserError,
    build_discount_input,
    is_transient,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_config(**overrides):
    """Build a mock ShopifyShopConfig."""
    config = MagicMock()
    config.pk = None
    config.shopify_domain = "test-shop.myshopify.com"
    config.api_access_token = "shpat_test"
    config.api_version = "2025-01"
    config.shop_gid = ""
    config.extra_data = overrides.pop("extra_data", {})
    for k, v in overrides.items():
        setattr(config, k, v)
    return config


def _response(data=None, status_code=200, errors=None, text=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    body = {}
    if data is not None:
        body["data"] = data
    if errors is not None:
        body["errors"] = errors
    response.json.return_value = body
    response.text = text if text is not None else json.dumps(body)
    return response


def _client(*responses, **config_overrides):
    session = MagicMock()
    session.post.side_effect = list(responses)
    return ShopifyAdminClient(_make_config(**config_overrides), session=session, timeout=3)


def _bundle(**overrides):
    defaults = {
        "title": "Camera Kit",
        "start_date": None,
        "end_date": None,
        "combine_with_product_discounts": True,
        "combine_with_order_discounts": False,
        "combine_with_shipping_discounts": True,
    }
    defaults.update(overrides)
    return SimpleNamespace(**defaults)


# ---------------------------------------------------------------------------
# ShopifyAdminClient
# ---------------------------------------------------------------------------


class TestShopifyAdminClient:
    def test_posts_to_versioned_endpoint(self):
        client = _client(_response({"shop": {"id": "gid://shopify/Shop/1"}}))
        data = client.graphql("query { shop { id } }", {"a": 1})

        assert data == {"shop": {"id": "gid://shopify/Shop/1"}}
        args, kwargs = client.session.post.call_args
        assert args[0] == "https://test-shop.myshopify.com/admin/api/2025-01/graphql.json"
        assert kwargs["headers"]["X-Shopify-Access-Token"] == "shpat_test"
        assert kwargs["json"] == {"query": "query { shop { id } }", "variables": {"a": 1}}
        assert kwargs["timeout"] == 3

    def test_http_error(self):
        client = _client(_response(status_code=503, text="unavailable"))
        with pytest.raises(ShopifyAPIError) as exc_info:
            client.graphql("query { shop { id } }")
        assert exc_info.value.status_code == 503

    def test_top_level_errors(self):
        client = _client(_response(errors=[{"message": "Throttled"}]))
        with pytest.raises(ShopifyAPIError, match="Throttled"):
            client.graphql("query { shop { id } }")

    def test_non_json_body(self):
        response = _response({})
        response.json.side_effect = ValueError("no json")
        with pytest.raises(ShopifyAPIError, match="non-JSON"):
            _client(response).graphql("query { shop { id } }")

    def test_timeout_propagates(self):
        client = _client(requests.Timeout("slow"))
        with pytest.raises(requests.Timeout):
            client.graphql("query { shop { id } }")

    def test_default_timeout_from_settings(self, settings):
        settings.ADDON_BUNDLES_SHOPIFY_TIMEOUT = 7
        assert ShopifyAdminClient(_make_config(), session=MagicMock()).timeout == 7


# ---------------------------------------------------------------------------
# MetafieldGateway
# ---------------------------------------------------------------------------


class TestMetafieldGateway:
    def test_write_serializes_value(self):
        client = _client(_response({"metafieldsSet": {"userErrors": []}}))
        gateway = MetafieldGateway(client, namespace="addon-bundle")

        result = gateway.write(["gid://shopify/Product/1"], "config", {"title": "Kit"})

        assert result == {"gid://shopify/Product/1": None}
        sent = client.session.post.call_args[1]["json"]["variables"]["metafields"]
        assert sent == [
            {
                "ownerId": "gid://shopify/Product/1",
                "namespace": "addon-bundle",
                "key": "config",
                "type": "json",
                "value": json.dumps({"title": "Kit"}),
            }
        ]

    def test_user_error_is_attributed_to_its_owner(self):
        client = _client(
            _response(
                {
                    "metafieldsSet": {
                        "userErrors": [
                            {"field": ["metafields", "1", "ownerId"], "message": "Owner not found"}
                        ]
                    }
                }
            )
        )
        result = MetafieldGateway(client).write(["a", "b"], "config", {})
        assert result == {"a": None, "b": "Owner not found"}

    def test_unattributed_user_error_marks_chunk(self):
        client = _client(
            _response({"metafieldsDelete": {"userErrors": [{"field": None, "message": "Denied"}]}})
        )
        result = MetafieldGateway(client).delete(["a", "b"], "config")
        assert result == {"a": "Denied", "b": "Denied"}

    def test_transport_failure_marks_chunk_and_continues(self):
        owners = [f"gid://shopify/Product/{i}" for i in range(30)]
        client = _client(
            requests.ConnectionError("reset"),
            _response({"metafieldsSet": {"userErrors": []}}),
        )
        result = MetafieldGateway(client).write(owners, "config", {})

        assert client.session.post.call_count == 2
        assert all(isinstance(result[o], requests.ConnectionError) for o in owners[:25])
        assert all(result[o] is None for o in owners[25:])

    def test_get_shop_gid_is_cached(self):
        client = _client(_response({"shop": {"id": "gid://shopify/Shop/9"}}))
        gateway = MetafieldGateway(client)
        assert gateway.get_shop_gid() == "gid://shopify/Shop/9"
        assert gateway.get_shop_gid() == "gid://shopify/Shop/9"
        assert client.session.post.call_count == 1

    def test_fetch_product_handles_skips_failed_chunk(self):
        ids = [f"gid://shopify/Product/{i}" for i in range(60)]
        client = _client(
            _response(status_code=500),
            _response({"nodes": [{"id": ids[55], "handle": "tripod"}, None]}),
        )
        assert MetafieldGateway(client).fetch_product_handles(ids) == {ids[55]: "tripod"}


# ---------------------------------------------------------------------------
# DiscountGateway
# ---------------------------------------------------------------------------


class TestBuildDiscountInput:
    def test_fields(self):
        discount = build_discount_input(
            _bundle(), {"bundleId": "1"}, function_id="fn-1", starts_at="2026-01-01T00:00:00+00:00"
        )
        assert discount["title"] == "Add-On Bundle: Camera Kit"
        assert discount["startsAt"] == "2026-01-01T00:00:00+00:00"
        assert discount["endsAt"] is None
        assert discount["functionId"] == "fn-1"
        assert discount["discountClasses"] == ["PRODUCT"]
        assert discount["combinesWith"] == {
            "productDiscounts": True,
            "orderDiscounts": False,
            "shippingDiscounts": True,
        }
        [metafield] = discount["metafields"]
        assert metafield["namespace"] == DISCOUNT_METAFIELD_NAMESPACE
        assert json.loads(metafield["value"]) == {"bundleId": "1"}


FUNCTIONS = {
    "shopifyFunctions": {
        "nodes": [
            {"id": "fn-other", "apiType": "discount", "title": "Tiered", "app": {"handle": "tiers"}},
            {"id": "fn-cart", "apiType": "cart_transform", "title": "Bundle", "app": {"handle": "addon-bundle"}},
            {"id": "fn-ours", "apiType": "discount", "title": "Discount", "app": {"handle": "addon-bundle"}},
        ]
    }
}


class TestDiscountGateway:
    def test_function_id_from_extra_data(self):
        client = _client(extra_data={"discount_function_id": "fn-configured"})
        assert DiscountGateway(client).get_function_id() == "fn-configured"
        client.session.post.assert_not_called()

    def test_function_id_by_app_handle(self):
        client = _client(_response(FUNCTIONS))
        assert DiscountGateway(client).get_function_id() == "fn-ours"

    def test_single_discount_function_fallback(self):
        client = _client(
            _response(
                {"shopifyFunctions": {"nodes": [{"id": "fn-x", "apiType": "discount", "title": "X", "app": {}}]}}
            )
        )
        assert DiscountGateway(client).get_function_id() == "fn-x"

    def test_function_not_found(self):
        client = _client(_response({"shopifyFunctions": {"nodes": []}}))
        with pytest.raises(ShopifyAPIError, match="not found"):
            DiscountGateway(client).get_function_id()

    def test_create_returns_id(self):
        client = _client(
            _response(
                {
                    "discountAutomaticAppCreate": {
                        "automaticAppDiscount": {"discountId": "gid://shopify/DiscountAutomaticNode/5"},
                        "userErrors": [],
                    }
                }
            ),
            extra_data={"discount_function_id": "fn-1"},
        )
        discount_id = DiscountGateway(client).create(_bundle(), {"bundleId": "1"}, "2026-01-01")
        assert discount_id == "gid://shopify/DiscountAutomaticNode/5"

    def test_create_user_errors_raise(self):
        client = _client(
            _response(
                {"discountAutomaticAppCreate": {"userErrors": [{"field": ["title"], "message": "Taken"}]}}
            ),
            extra_data={"discount_function_id": "fn-1"},
        )
        with pytest.raises(ShopifyUserError, match="Taken"):
            DiscountGateway(client).create(_bundle(), {}, "2026-01-01")

    def test_update_rewrites_embedded_config(self):
        client = _client(
            _response({"discountAutomaticAppUpdate": {"userErrors": []}}),
            _response({"metafieldsSet": {"userErrors": []}}),
        )
        DiscountGateway(client).update("gid://d/1", _bundle(), {"bundleId": "1"}, "2026-01-01")

        first, second = client.session.post.call_args_list
        assert "metafields" not in first[1]["json"]["variables"]["discount"]
        [metafield] = second[1]["json"]["variables"]["metafields"]
        assert metafield["ownerId"] == "gid://d/1"
        assert metafield["key"] == "config"

    def test_delete_tolerates_missing_discount(self):
        client = _client(
            _response(
                {"discountAutomaticDelete": {"userErrors": [{"field": ["id"], "message": "Discount does not exist"}]}}
            )
        )
        DiscountGateway(client).delete("gid://d/1")

    def test_delete_other_user_error_raises(self):
        client = _client(
            _response({"discountAutomaticDelete": {"userErrors": [{"field": None, "message": "Access denied"}]}})
        )
        with pytest.raises(ShopifyUserError):
            DiscountGateway(client).delete("gid://d/1")


class TestIsTransient:
    @pytest.mark.parametrize(
        "exception",
        [
            requests.ConnectionError("reset"),
            requests.Timeout("slow"),
            ShopifyAPIError("throttled", status_code=429),
            ShopifyAPIError("down", status_code=500),
        ],
    )
    def test_transient(self, exception):
        assert is_transient(exception) is True

    @pytest.mark.parametrize(
        "exception",
        [
            ShopifyUserError("Taken", status_code=200),
            ShopifyAPIError("forbidden", status_code=403),
            ShopifyAPIError("Shopify did not return a shop id"),
            KeyError("id"),
        ],
    )
    def test_permanent(self, exception):
        assert is_transient(exception) is False

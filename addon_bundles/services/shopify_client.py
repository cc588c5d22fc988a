"""Shopify Admin GraphQL access for the bundle sync core.

Two narrow gateways sit on top of :class:`ShopifyAdminClient`:

* :class:`MetafieldGateway` - write/delete of widget-config metafield slots
  on the shop or on products, plus the lookups the sync pass needs
  (shop GID, product handles).
* :class:`DiscountGateway` - create/update/delete of the automatic app
  discount that carries the serialized discount config.

Every request is bounded by ``ADDON_BUNDLES_SHOPIFY_TIMEOUT`` and never
retried here; a timeout surfaces as :class:`requests.Timeout` and is
handled by the caller like any other write failure.
"""

import json
import logging

import requests
from django.conf import settings

from ..utils import chunked

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10
DEFAULT_METAFIELD_NAMESPACE = "addon-bundle"
DISCOUNT_METAFIELD_NAMESPACE = "$app:addon-bundle"
DISCOUNT_METAFIELD_KEY = "config"
SHOP_SLOT_KEY = "global_config"
PRODUCT_SLOT_KEY = "config"
DEFAULT_FUNCTION_HANDLES = ("addon-bundle",)
DISCOUNT_FUNCTION_API_TYPES = frozenset({"discount", "discounts", "product_discounts"})

# Shopify caps metafieldsSet / metafieldsDelete at 25 entries per call.
METAFIELD_BATCH_SIZE = 25
NODES_BATCH_SIZE = 50


def get_timeout():
    return getattr(settings, "ADDON_BUNDLES_SHOPIFY_TIMEOUT", DEFAULT_TIMEOUT)


def get_metafield_namespace():
    return getattr(
        settings, "ADDON_BUNDLES_METAFIELD_NAMESPACE", DEFAULT_METAFIELD_NAMESPACE
    )


class ShopifyAPIError(Exception):
    """Transport, HTTP or top-level GraphQL failure."""

    def __init__(self, message, errors=None, status_code=None):
        super().__init__(message)
        self.errors = errors or []
        self.status_code = status_code


class ShopifyUserError(ShopifyAPIError):
    """A mutation answered with ``userErrors``."""


def is_transient(exception):
    """Return True for failures a later attempt may get past.

    Transient: connection errors, timeouts, HTTP 429 and 5xx.
    Permanent: ``userErrors``, other HTTP 4xx, programming errors.
    """
    if isinstance(exception, ShopifyUserError):
        return False
    status_code = getattr(exception, "status_code", None)
    if status_code is None and getattr(exception, "response", None) is not None:
        status_code = exception.response.status_code
    if status_code is not None:
        return status_code == 429 or 500 <= status_code < 600
    return isinstance(exception, (requests.ConnectionError, requests.Timeout, OSError))


def _join_messages(errors):
    return ", ".join(str(e.get("message", e)) for e in errors)


class ShopifyAdminClient:
    """Thin Admin GraphQL client built from a :class:`ShopifyShopConfig`."""

    def __init__(self, shop_config, session=None, timeout=None):
        self.shop_config = shop_config
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else get_timeout()

    @property
    def endpoint(self):
        return (
            f"https://{self.shop_config.shopify_domain}/admin/api/"
            f"{self.shop_config.api_version}/graphql.json"
        )

    def _headers(self):
        return {
            "X-Shopify-Access-Token": self.shop_config.api_access_token,
            "Content-Type": "application/json",
        }

    def graphql(self, query, variables=None):
        """Execute a GraphQL document and return its ``data`` dict.

        Raises:
            ShopifyAPIError: non-2xx response, unparseable body, or a
                top-level ``errors`` array.
            requests.Timeout / requests.ConnectionError: transport failure.
        """
        payload = {"query": query}
        if variables:
            payload["variables"] = variables
        response = self.session.post(
            self.endpoint, headers=self._headers(), json=payload, timeout=self.timeout
        )
        if not response.ok:
            raise ShopifyAPIError(
                f"Shopify GraphQL HTTP {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError:
            raise ShopifyAPIError(
                "Shopify GraphQL returned a non-JSON body",
                status_code=response.status_code,
            )
        if body.get("errors"):
            raise ShopifyAPIError(
                f"Shopify GraphQL errors: {_join_messages(body['errors'])}",
                errors=body["errors"],
                status_code=response.status_code,
            )
        return body.get("data") or {}


# ---------------------------------------------------------------------------
# Metafield slots
# ---------------------------------------------------------------------------

METAFIELDS_SET = """
mutation MetafieldsSet($metafields: [MetafieldsSetInput!]!) {
  metafieldsSet(metafields: $metafields) {
    metafields { id namespace key ownerType }
    userErrors { field message }
  }
}
"""

METAFIELDS_DELETE = """
mutation MetafieldsDelete($metafields: [MetafieldIdentifierInput!]!) {
  metafieldsDelete(metafields: $metafields) {
    deletedMetafields { ownerId namespace key }
    userErrors { field message }
  }
}
"""

SHOP_ID_QUERY = "query ShopId { shop { id } }"

PRODUCT_HANDLES_QUERY = """
query ProductHandles($ids: [ID!]!) {
  nodes(ids: $ids) {
    ... on Product { id handle }
  }
}
"""


def _user_error_index(user_error):
    """Return the input index a metafield ``userError`` points at, or ``None``.

    Shopify reports the path as e.g. ``["metafields", "3", "value"]``.
    """
    field = user_error.get("field") or []
    if len(field) >= 2 and field[0] == "metafields":
        try:
            return int(field[1])
        except (TypeError, ValueError):
            return None
    return None


class MetafieldGateway:
    """Write/delete widget-config slots.

    ``write`` and ``delete`` take a list of owner GIDs and return a dict
    ``{owner_id: error_or_None}`` so one bad slot never hides the outcome
    of its siblings. The error is the ``userErrors`` message, or the
    exception when the request for its chunk failed.
    """

    def __init__(self, client, namespace=None):
        self.client = client
        self.namespace = namespace or get_metafield_namespace()

    def get_shop_gid(self):
        config = self.client.shop_config
        if config.shop_gid:
            return config.shop_gid
        data = self.client.graphql(SHOP_ID_QUERY)
        shop_gid = (data.get("shop") or {}).get("id")
        if not shop_gid:
            raise ShopifyAPIError("Shopify did not return a shop id")
        config.shop_gid = shop_gid
        if getattr(config, "pk", None):
            config.save(update_fields=["shop_gid", "updated_at"])
        return shop_gid

    def fetch_product_handles(self, product_ids):
        """Return ``{product_gid: handle}``; a failed chunk is skipped."""
        handles = {}
        for chunk in chunked(dict.fromkeys(product_ids), NODES_BATCH_SIZE):
            try:
                data = self.client.graphql(PRODUCT_HANDLES_QUERY, {"ids": chunk})
            except (ShopifyAPIError, requests.RequestException):
                logger.warning(
                    "Could not fetch handles for %d products (shop=%s)",
                    len(chunk),
                    self.client.shop_config.shopify_domain,
                    exc_info=True,
                )
                continue
            for node in data.get("nodes") or []:
                if node and node.get("id") and node.get("handle"):
                    handles[node["id"]] = node["handle"]
        return handles

    def write(self, owner_ids, key, value):
        """Set ``namespace.key`` to the JSON-serialized *value* on each owner."""
        serialized = json.dumps(value)
        entries = [
            {
                "ownerId": owner_id,
                "namespace": self.namespace,
                "key": key,
                "type": "json",
                "value": serialized,
            }
            for owner_id in owner_ids
        ]
        return self._run_batched(METAFIELDS_SET, "metafieldsSet", entries)

    def delete(self, owner_ids, key):
        entries = [
            {"ownerId": owner_id, "namespace": self.namespace, "key": key}
            for owner_id in owner_ids
        ]
        return self._run_batched(METAFIELDS_DELETE, "metafieldsDelete", entries)

    def _run_batched(self, mutation, root_field, entries):
        results = {}
        for chunk in chunked(entries, METAFIELD_BATCH_SIZE):
            owners = [entry["ownerId"] for entry in chunk]
            try:
                data = self.client.graphql(mutation, {"metafields": chunk})
            except (ShopifyAPIError, requests.RequestException) as exc:
                for owner_id in owners:
                    results[owner_id] = exc
                continue

            user_errors = (data.get(root_field) or {}).get("userErrors") or []
            for owner_id in owners:
                results[owner_id] = None
            for user_error in user_errors:
                index = _user_error_index(user_error)
                message = user_error.get("message", "unknown error")
                if index is not None and 0 <= index < len(owners):
                    results[owners[index]] = message
                else:
                    # Not attributable to one entry: the whole chunk is suspect.
                    for owner_id in owners:
                        results[owner_id] = results[owner_id] or message
        return results


# ---------------------------------------------------------------------------
# Discount resource
# ---------------------------------------------------------------------------

SHOPIFY_FUNCTIONS_QUERY = """
query DiscountFunctions {
  shopifyFunctions(first: 100) {
    nodes { id apiType title app { handle } }
  }
}
"""

DISCOUNT_CREATE = """
mutation CreateAutomaticDiscount($discount: DiscountAutomaticAppInput!) {
  discountAutomaticAppCreate(automaticAppDiscount: $discount) {
    automaticAppDiscount { discountId }
    userErrors { field message }
  }
}
"""

DISCOUNT_UPDATE = """
mutation UpdateAutomaticDiscount($id: ID!, $discount: DiscountAutomaticAppInput!) {
  discountAutomaticAppUpdate(id: $id, automaticAppDiscount: $discount) {
    automaticAppDiscount { discountId }
    userErrors { field message }
  }
}
"""

DISCOUNT_DELETE = """
mutation DeleteAutomaticDiscount($id: ID!) {
  discountAutomaticDelete(id: $id) {
    deletedAutomaticDiscountId
    userErrors { field message }
  }
}
"""


def _isoformat(value):
    return value.isoformat() if value else None


def build_discount_input(bundle, discount_config, function_id=None, starts_at=None):
    """Build a ``DiscountAutomaticAppInput`` for *bundle*.

    The discount config is embedded as an app-owned JSON metafield which
    the checkout function reads back on every cart evaluation.
    """
    discount = {
        "title": f"Add-On Bundle: {bundle.title}",
        "startsAt": _isoformat(bundle.start_date) or starts_at,
        "endsAt": _isoformat(bundle.end_date),
        "combinesWith": {
            "productDiscounts": bundle.combine_with_product_discounts,
            "orderDiscounts": bundle.combine_with_order_discounts,
            "shippingDiscounts": bundle.combine_with_shipping_discounts,
        },
        "discountClasses": ["PRODUCT"],
        "metafields": [
            {
                "namespace": DISCOUNT_METAFIELD_NAMESPACE,
                "key": DISCOUNT_METAFIELD_KEY,
                "type": "json",
                "value": json.dumps(discount_config),
            }
        ],
    }
    if function_id:
        discount["functionId"] = function_id
    return discount


def _raise_for_user_errors(payload, action):
    user_errors = (payload or {}).get("userErrors") or []
    if user_errors:
        raise ShopifyUserError(
            f"{action} failed: {_join_messages(user_errors)}", errors=user_errors
        )


def _is_missing_resource(error):
    return any(
        "does not exist" in str(e.get("message", "")).lower()
        or "not found" in str(e.get("message", "")).lower()
        for e in error.errors
    )


class DiscountGateway:
    """Create/update/delete the automatic app discount for a bundle."""

    def __init__(self, client):
        self.client = client

    def get_function_id(self):
        """Resolve the deployed discount function id.

        Order: ``extra_data["discount_function_id"]`` → app handle match →
        title match → ``addon``/``bundle`` keyword → the only discount
        function available.
        """
        configured = self.client.shop_config.extra_data.get("discount_function_id")
        if configured:
            return configured

        data = self.client.graphql(SHOPIFY_FUNCTIONS_QUERY)
        functions = (data.get("shopifyFunctions") or {}).get("nodes") or []
        candidates = [
            fn for fn in functions if fn.get("apiType") in DISCOUNT_FUNCTION_API_TYPES
        ]
        patterns = [
            p.lower()
            for p in getattr(
                settings,
                "ADDON_BUNDLES_DISCOUNT_FUNCTION_HANDLES",
                DEFAULT_FUNCTION_HANDLES,
            )
        ]

        def _handle(fn):
            return ((fn.get("app") or {}).get("handle") or "").lower()

        def _title(fn):
            return (fn.get("title") or "").lower()

        matchers = (
            lambda fn: any(p in _handle(fn) for p in patterns),
            lambda fn: any(p in _title(fn) for p in patterns),
            lambda fn: "addon" in _title(fn) or "bundle" in _title(fn),
        )
        for matcher in matchers:
            for fn in candidates:
                if matcher(fn):
                    return fn["id"]

        if len(candidates) == 1:
            logger.warning(
                "Discount function not matched by name; using the only one available (%s)",
                candidates[0].get("id"),
            )
            return candidates[0]["id"]

        raise ShopifyAPIError(
            f"Discount function not found: {len(functions)} functions, "
            f"{len(candidates)} discount functions deployed"
        )

    def create(self, bundle, discount_config, starts_at):
        """Create the discount and return its GID."""
        function_id = self.get_function_id()
        data = self.client.graphql(
            DISCOUNT_CREATE,
            {
                "discount": build_discount_input(
                    bundle, discount_config, function_id=function_id, starts_at=starts_at
                )
            },
        )
        payload = data.get("discountAutomaticAppCreate")
        _raise_for_user_errors(payload, "discountAutomaticAppCreate")
        discount_id = ((payload or {}).get("automaticAppDiscount") or {}).get("discountId")
        if not discount_id:
            raise ShopifyAPIError("discountAutomaticAppCreate returned no discount id")
        return discount_id

    def update(self, discount_id, bundle, discount_config, starts_at):
        """Push settings and the embedded config to an existing discount."""
        discount = build_discount_input(bundle, discount_config, starts_at=starts_at)
        metafields = discount.pop("metafields")
        data = self.client.graphql(
            DISCOUNT_UPDATE, {"id": discount_id, "discount": discount}
        )
        _raise_for_user_errors(
            data.get("discountAutomaticAppUpdate"), "discountAutomaticAppUpdate"
        )

        for metafield in metafields:
            metafield["ownerId"] = discount_id
        data = self.client.graphql(METAFIELDS_SET, {"metafields": metafields})
        _raise_for_user_errors(data.get("metafieldsSet"), "metafieldsSet")

    def delete(self, discount_id):
        """Delete the discount. A discount that is already gone counts as deleted."""
        data = self.client.graphql(DISCOUNT_DELETE, {"id": discount_id})
        try:
            _raise_for_user_errors(
                data.get("discountAutomaticDelete"), "discountAutomaticDelete"
            )
        except ShopifyUserError as exc:
            if _is_missing_resource(exc):
                logger.info("Discount %s already deleted on Shopify", discount_id)
                return
            raise

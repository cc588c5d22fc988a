from django.db import models


class ShopifyShopConfig(models.Model):
    """Per-shop Shopify Admin API connection. One record per shop."""

    shopify_domain = models.CharField(max_length=255, unique=True)
    api_access_token = models.TextField()
    api_version = models.CharField(max_length=10, default="2025-01")
    shop_gid = models.CharField(max_length=255, blank=True, default="")
    extra_data = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "addon_bundles_shop_config"

    def __str__(self):
        return self.shopify_domain


class Bundle(models.Model):
    """A main offer augmented with discounted companion products."""

    class Status(models.TextChoices):
        DRAFT = "DRAFT"
        ACTIVE = "ACTIVE"
        ARCHIVED = "ARCHIVED"

    class SelectionMode(models.TextChoices):
        SINGLE = "SINGLE"
        MULTIPLE = "MULTIPLE"

    class TargetingType(models.TextChoices):
        ALL = "ALL_PRODUCTS"
        SPECIFIC = "SPECIFIC_PRODUCTS"
        GROUPED = "PRODUCT_GROUPS"

    shop = models.ForeignKey(
        ShopifyShopConfig, on_delete=models.CASCADE, related_name="bundles"
    )
    title = models.CharField(max_length=255)
    subtitle = models.CharField(max_length=255, blank=True, null=True)
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.DRAFT
    )
    start_date = models.DateTimeField(null=True, blank=True)
    end_date = models.DateTimeField(null=True, blank=True)
    selection_mode = models.CharField(
        max_length=20, choices=SelectionMode.choices, default=SelectionMode.MULTIPLE
    )
    targeting_type = models.CharField(
        max_length=20, choices=TargetingType.choices, default=TargetingType.ALL
    )
    combine_with_product_discounts = models.BooleanField(default=True)
    combine_with_order_discounts = models.BooleanField(default=True)
    combine_with_shipping_discounts = models.BooleanField(default=True)
    delete_add_ons_with_main = models.BooleanField(default=False)
    external_discount_id = models.CharField(max_length=255, blank=True, null=True)
    # Owner GIDs whose metafield slot last received this bundle's widget config.
    published_owner_ids = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "addon_bundles_bundle"
        indexes = [
            models.Index(
                fields=["shop", "status"],
                name="addon_bundl_shop_id_9b1f0e_idx",
            ),
            models.Index(
                fields=["shop", "status", "start_date", "end_date"],
                name="addon_bundl_shop_id_4c7a2d_idx",
            ),
        ]

    def __str__(self):
        return f"{self.title} [{self.status}]"

    @property
    def is_active(self):
        return self.status == self.Status.ACTIVE


class AddOnSet(models.Model):
    """A companion product offered at a discount inside a bundle."""

    class DiscountType(models.TextChoices):
        PERCENTAGE = "PERCENTAGE"
        FIXED_AMOUNT = "FIXED_AMOUNT"
        FIXED_PRICE = "FIXED_PRICE"
        FREE_GIFT = "FREE_GIFT"

    bundle = models.ForeignKey(
        Bundle, on_delete=models.CASCADE, related_name="add_on_sets"
    )
    shopify_product_id = models.CharField(max_length=255, db_index=True)
    product_title = models.CharField(max_length=255, blank=True, null=True)
    product_image_url = models.URLField(max_length=1024, blank=True, null=True)
    custom_image_url = models.URLField(max_length=1024, blank=True, null=True)
    title = models.CharField(max_length=255, blank=True, null=True)
    position = models.PositiveIntegerField(default=0)
    discount_type = models.CharField(
        max_length=20, choices=DiscountType.choices, default=DiscountType.PERCENTAGE
    )
    discount_value = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )
    discount_label = models.CharField(max_length=255, blank=True, null=True)
    is_default_selected = models.BooleanField(default=False)
    subscription_only = models.BooleanField(default=False)
    show_quantity_selector = models.BooleanField(default=False)
    max_quantity = models.PositiveIntegerField(default=10)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "addon_bundles_add_on_set"
        ordering = ["position", "id"]

    def __str__(self):
        return f"{self.title or self.product_title or self.shopify_product_id} ({self.discount_type})"

    def save(self, *args, **kwargs):
        if self.discount_type == self.DiscountType.FREE_GIFT:
            self.discount_value = None
            self.is_default_selected = False
        super().save(*args, **kwargs)


class AddOnSetVariant(models.Model):
    """A selected variant of an add-on product. ``variant_price`` is a display cache."""

    add_on_set = models.ForeignKey(
        AddOnSet, on_delete=models.CASCADE, related_name="selected_variants"
    )
    shopify_variant_id = models.CharField(max_length=255, db_index=True)
    variant_title = models.CharField(max_length=255, blank=True, null=True)
    variant_sku = models.CharField(max_length=255, blank=True, null=True)
    variant_price = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )
    position = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "addon_bundles_add_on_set_variant"
        ordering = ["position", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["add_on_set", "shopify_variant_id"],
                name="unique_add_on_set_variant",
            ),
        ]

    def __str__(self):
        return self.shopify_variant_id


class BundleTargetedItem(models.Model):
    """A product or collection targeted by a SPECIFIC_PRODUCTS bundle."""

    class ResourceType(models.TextChoices):
        PRODUCT = "Product"
        COLLECTION = "Collection"

    bundle = models.ForeignKey(
        Bundle, on_delete=models.CASCADE, related_name="targeted_items"
    )
    shopify_resource_id = models.CharField(max_length=255, db_index=True)
    shopify_resource_type = models.CharField(
        max_length=20, choices=ResourceType.choices, default=ResourceType.PRODUCT
    )
    title = models.CharField(max_length=255, blank=True, null=True)
    image_url = models.URLField(max_length=1024, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "addon_bundles_targeted_item"
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["bundle", "shopify_resource_id"],
                name="unique_bundle_targeted_resource",
            ),
        ]

    def __str__(self):
        return f"{self.shopify_resource_type} {self.shopify_resource_id}"


class ProductGroup(models.Model):
    """A named tab of products for a PRODUCT_GROUPS bundle."""

    bundle = models.ForeignKey(
        Bundle, on_delete=models.CASCADE, related_name="product_groups"
    )
    title = models.CharField(max_length=255)
    position = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "addon_bundles_product_group"
        ordering = ["position", "id"]

    def __str__(self):
        return self.title


class ProductGroupItem(models.Model):
    product_group = models.ForeignKey(
        ProductGroup, on_delete=models.CASCADE, related_name="items"
    )
    shopify_resource_id = models.CharField(max_length=255, db_index=True)
    shopify_resource_type = models.CharField(
        max_length=20,
        choices=BundleTargetedItem.ResourceType.choices,
        default=BundleTargetedItem.ResourceType.PRODUCT,
    )
    title = models.CharField(max_length=255, blank=True, null=True)
    image_url = models.URLField(max_length=1024, blank=True, null=True)
    position = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "addon_bundles_product_group_item"
        ordering = ["position", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["product_group", "shopify_resource_id"],
                name="unique_product_group_resource",
            ),
        ]

    def __str__(self):
        return f"{self.shopify_resource_type} {self.shopify_resource_id}"


class WidgetStyle(models.Model):
    """Storefront presentation of a bundle. Created lazily, one per bundle."""

    class LayoutType(models.TextChoices):
        LIST = "LIST"
        GRID = "GRID"
        CAROUSEL = "CAROUSEL"

    class ImageSize(models.TextChoices):
        SMALL = "SMALL"
        MEDIUM = "MEDIUM"
        LARGE = "LARGE"

    class BorderStyle(models.TextChoices):
        SOLID = "SOLID"
        DASHED = "DASHED"
        DOTTED = "DOTTED"
        NONE = "NONE"

    class DiscountLabelStyle(models.TextChoices):
        BADGE = "BADGE"
        TEXT = "TEXT"
        HIGHLIGHTED = "HIGHLIGHTED"

    bundle = models.OneToOneField(
        Bundle, on_delete=models.CASCADE, related_name="widget_style"
    )
    background_color = models.CharField(max_length=20, default="#ffffff")
    font_color = models.CharField(max_length=20, default="#000000")
    button_color = models.CharField(max_length=20, default="#000000")
    button_text_color = models.CharField(max_length=20, default="#ffffff")
    discount_badge_color = models.CharField(max_length=20, default="#e53935")
    discount_text_color = models.CharField(max_length=20, default="#ffffff")
    font_size = models.PositiveIntegerField(default=14)
    title_font_size = models.PositiveIntegerField(default=18)
    subtitle_font_size = models.PositiveIntegerField(default=14)
    layout_type = models.CharField(
        max_length=20, choices=LayoutType.choices, default=LayoutType.LIST
    )
    border_radius = models.PositiveIntegerField(default=8)
    border_style = models.CharField(
        max_length=20, choices=BorderStyle.choices, default=BorderStyle.SOLID
    )
    border_width = models.PositiveIntegerField(default=1)
    border_color = models.CharField(max_length=20, default="#e0e0e0")
    padding = models.PositiveIntegerField(default=16)
    margin_top = models.PositiveIntegerField(default=16)
    margin_bottom = models.PositiveIntegerField(default=16)
    image_size = models.CharField(
        max_length=20, choices=ImageSize.choices, default=ImageSize.MEDIUM
    )
    discount_label_style = models.CharField(
        max_length=20,
        choices=DiscountLabelStyle.choices,
        default=DiscountLabelStyle.BADGE,
    )
    show_countdown_timer = models.BooleanField(default=False)
    custom_css = models.TextField(blank=True, default="")
    custom_js = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "addon_bundles_widget_style"

    def __str__(self):
        return f"WidgetStyle (bundle={self.bundle_id})"


class BundleSyncLog(models.Model):
    """Audit row written by every sync pass."""

    class Status(models.TextChoices):
        SUCCESS = "success"
        PARTIAL = "partial"
        FAILED = "failed"

    bundle_id_snapshot = models.PositiveIntegerField(db_index=True)
    shop_domain = models.CharField(max_length=255, db_index=True)
    trigger = models.CharField(max_length=100, default="manual")
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.SUCCESS
    )
    report = models.JSONField(default=dict, blank=True)
    discount_error = models.TextField(blank=True, default="")
    processing_time_ms = models.IntegerField(null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "addon_bundles_sync_log"
        indexes = [
            models.Index(
                fields=["shop_domain", "created_at"],
                name="addon_bundl_shop_do_7e3b91_idx",
            ),
        ]

    def __str__(self):
        return f"sync bundle={self.bundle_id_snapshot} [{self.status}] ({self.trigger})"

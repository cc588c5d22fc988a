# Generated manually for addon_bundles app

import django.db.models.deletion
from django.db import migrations, models


def _id():
    return (
        "id",
        models.AutoField(
            auto_created=True,
            primary_key=True,
            serialize=False,
            verbose_name="ID",
        ),
    )


RESOURCE_TYPE_CHOICES = [("Product", "Product"), ("Collection", "Collection")]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="ShopifyShopConfig",
            fields=[
                _id(),
                ("shopify_domain", models.CharField(max_length=255, unique=True)),
                ("api_access_token", models.TextField()),
                (
                    "api_version",
                    models.CharField(default="2025-01", max_length=10),
                ),
                ("shop_gid", models.CharField(blank=True, default="", max_length=255)),
                ("extra_data", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "db_table": "addon_bundles_shop_config",
            },
        ),
        migrations.CreateModel(
            name="Bundle",
            fields=[
                _id(),
                ("title", models.CharField(max_length=255)),
                ("subtitle", models.CharField(blank=True, max_length=255, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("DRAFT", "Draft"),
                            ("ACTIVE", "Active"),
                            ("ARCHIVED", "Archived"),
                        ],
                        default="DRAFT",
                        max_length=20,
                    ),
                ),
                ("start_date", models.DateTimeField(blank=True, null=True)),
                ("end_date", models.DateTimeField(blank=True, null=True)),
                (
                    "selection_mode",
                    models.CharField(
                        choices=[("SINGLE", "Single"), ("MULTIPLE", "Multiple")],
                        default="MULTIPLE",
                        max_length=20,
                    ),
                ),
                (
                    "targeting_type",
                    models.CharField(
                        choices=[
                            ("ALL_PRODUCTS", "All"),
                            ("SPECIFIC_PRODUCTS", "Specific"),
                            ("PRODUCT_GROUPS", "Grouped"),
                        ],
                        default="ALL_PRODUCTS",
                        max_length=20,
                    ),
                ),
                ("combine_with_product_discounts", models.BooleanField(default=True)),
                ("combine_with_order_discounts", models.BooleanField(default=True)),
                ("combine_with_shipping_discounts", models.BooleanField(default=True)),
                ("delete_add_ons_with_main", models.BooleanField(default=False)),
                (
                    "external_discount_id",
                    models.CharField(blank=True, max_length=255, null=True),
                ),
                ("published_owner_ids", models.JSONField(blank=True, default=list)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "shop",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bundles",
                        to="addon_bundles.shopifyshopconfig",
                    ),
                ),
            ],
            options={
                "db_table": "addon_bundles_bundle",
                "indexes": [
                    models.Index(
                        fields=["shop", "status"],
                        name="addon_bundl_shop_id_9b1f0e_idx",
                    ),
                    models.Index(
                        fields=["shop", "status", "start_date", "end_date"],
                        name="addon_bundl_shop_id_4c7a2d_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="AddOnSet",
            fields=[
                _id(),
                ("shopify_product_id", models.CharField(db_index=True, max_length=255)),
                ("product_title", models.CharField(blank=True, max_length=255, null=True)),
                (
                    "product_image_url",
                    models.URLField(blank=True, max_length=1024, null=True),
                ),
                (
                    "custom_image_url",
                    models.URLField(blank=True, max_length=1024, null=True),
                ),
                ("title", models.CharField(blank=True, max_length=255, null=True)),
                ("position", models.PositiveIntegerField(default=0)),
                (
                    "discount_type",
                    models.CharField(
                        choices=[
                            ("PERCENTAGE", "Percentage"),
                            ("FIXED_AMOUNT", "Fixed Amount"),
                            ("FIXED_PRICE", "Fixed Price"),
                            ("FREE_GIFT", "Free Gift"),
                        ],
                        default="PERCENTAGE",
                        max_length=20,
                    ),
                ),
                (
                    "discount_value",
                    models.DecimalField(
                        blank=True, decimal_places=2, max_digits=10, null=True
                    ),
                ),
                ("discount_label", models.CharField(blank=True, max_length=255, null=True)),
                ("is_default_selected", models.BooleanField(default=False)),
                ("subscription_only", models.BooleanField(default=False)),
                ("show_quantity_selector", models.BooleanField(default=False)),
                ("max_quantity", models.PositiveIntegerField(default=10)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "bundle",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="add_on_sets",
                        to="addon_bundles.bundle",
                    ),
                ),
            ],
            options={
                "db_table": "addon_bundles_add_on_set",
                "ordering": ["position", "id"],
            },
        ),
        migrations.CreateModel(
            name="AddOnSetVariant",
            fields=[
                _id(),
                ("shopify_variant_id", models.CharField(db_index=True, max_length=255)),
                ("variant_title", models.CharField(blank=True, max_length=255, null=True)),
                ("variant_sku", models.CharField(blank=True, max_length=255, null=True)),
                (
                    "variant_price",
                    models.DecimalField(
                        blank=True, decimal_places=2, max_digits=10, null=True
                    ),
                ),
                ("position", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "add_on_set",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="selected_variants",
                        to="addon_bundles.addonset",
                    ),
                ),
            ],
            options={
                "db_table": "addon_bundles_add_on_set_variant",
                "ordering": ["position", "id"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("add_on_set", "shopify_variant_id"),
                        name="unique_add_on_set_variant",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BundleTargetedItem",
            fields=[
                _id(),
                ("shopify_resource_id", models.CharField(db_index=True, max_length=255)),
                (
                    "shopify_resource_type",
                    models.CharField(
                        choices=RESOURCE_TYPE_CHOICES, default="Product", max_length=20
                    ),
                ),
                ("title", models.CharField(blank=True, max_length=255, null=True)),
                ("image_url", models.URLField(blank=True, max_length=1024, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "bundle",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="targeted_items",
                        to="addon_bundles.bundle",
                    ),
                ),
            ],
            options={
                "db_table": "addon_bundles_targeted_item",
                "ordering": ["created_at", "id"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("bundle", "shopify_resource_id"),
                        name="unique_bundle_targeted_resource",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ProductGroup",
            fields=[
                _id(),
                ("title", models.CharField(max_length=255)),
                ("position", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "bundle",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="product_groups",
                        to="addon_bundles.bundle",
                    ),
                ),
            ],
            options={
                "db_table": "addon_bundles_product_group",
                "ordering": ["position", "id"],
            },
        ),
        migrations.CreateModel(
            name="ProductGroupItem",
            fields=[
                _id(),
                ("shopify_resource_id", models.CharField(db_index=True, max_length=255)),
                (
                    "shopify_resource_type",
                    models.CharField(
                        choices=RESOURCE_TYPE_CHOICES, default="Product", max_length=20
                    ),
                ),
                ("title", models.CharField(blank=True, max_length=255, null=True)),
                ("image_url", models.URLField(blank=True, max_length=1024, null=True)),
                ("position", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "product_group",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="addon_bundles.productgroup",
                    ),
                ),
            ],
            options={
                "db_table": "addon_bundles_product_group_item",
                "ordering": ["position", "id"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("product_group", "shopify_resource_id"),
                        name="unique_product_group_resource",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WidgetStyle",
            fields=[
                _id(),
                ("background_color", models.CharField(default="#ffffff", max_length=20)),
                ("font_color", models.CharField(default="#000000", max_length=20)),
                ("button_color", models.CharField(default="#000000", max_length=20)),
                ("button_text_color", models.CharField(default="#ffffff", max_length=20)),
                ("discount_badge_color", models.CharField(default="#e53935", max_length=20)),
                ("discount_text_color", models.CharField(default="#ffffff", max_length=20)),
                ("font_size", models.PositiveIntegerField(default=14)),
                ("title_font_size", models.PositiveIntegerField(default=18)),
                ("subtitle_font_size", models.PositiveIntegerField(default=14)),
                (
                    "layout_type",
                    models.CharField(
                        choices=[("LIST", "List"), ("GRID", "Grid"), ("CAROUSEL", "Carousel")],
                        default="LIST",
                        max_length=20,
                    ),
                ),
                ("border_radius", models.PositiveIntegerField(default=8)),
                (
                    "border_style",
                    models.CharField(
                        choices=[
                            ("SOLID", "Solid"),
                            ("DASHED", "Dashed"),
                            ("DOTTED", "Dotted"),
                            ("NONE", "None"),
                        ],
                        default="SOLID",
                        max_length=20,
                    ),
                ),
                ("border_width", models.PositiveIntegerField(default=1)),
                ("border_color", models.CharField(default="#e0e0e0", max_length=20)),
                ("padding", models.PositiveIntegerField(default=16)),
                ("margin_top", models.PositiveIntegerField(default=16)),
                ("margin_bottom", models.PositiveIntegerField(default=16)),
                (
                    "image_size",
                    models.CharField(
                        choices=[("SMALL", "Small"), ("MEDIUM", "Medium"), ("LARGE", "Large")],
                        default="MEDIUM",
                        max_length=20,
                    ),
                ),
                (
                    "discount_label_style",
                    models.CharField(
                        choices=[
                            ("BADGE", "Badge"),
                            ("TEXT", "Text"),
                            ("HIGHLIGHTED", "Highlighted"),
                        ],
                        default="BADGE",
                        max_length=20,
                    ),
                ),
                ("show_countdown_timer", models.BooleanField(default=False)),
                ("custom_css", models.TextField(blank=True, default="")),
                ("custom_js", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "bundle",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="widget_style",
                        to="addon_bundles.bundle",
                    ),
                ),
            ],
            options={
                "db_table": "addon_bundles_widget_style",
            },
        ),
        migrations.CreateModel(
            name="BundleSyncLog",
            fields=[
                _id(),
                ("bundle_id_snapshot", models.PositiveIntegerField(db_index=True)),
                ("shop_domain", models.CharField(db_index=True, max_length=255)),
                ("trigger", models.CharField(default="manual", max_length=100)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("success", "Success"),
                            ("partial", "Partial"),
                            ("failed", "Failed"),
                        ],
                        default="success",
                        max_length=20,
                    ),
                ),
                ("report", models.JSONField(blank=True, default=dict)),
                ("discount_error", models.TextField(blank=True, default="")),
                ("processing_time_ms", models.IntegerField(null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "db_table": "addon_bundles_sync_log",
                "indexes": [
                    models.Index(
                        fields=["shop_domain", "created_at"],
                        name="addon_bundl_shop_do_7e3b91_idx",
                    ),
                ],
            },
        ),
    ]

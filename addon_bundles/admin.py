from django.contrib import admin, messages
from django.core.exceptions import ValidationError
from django.forms.models import BaseInlineFormSet

from .models import (
    AddOnSet,
    AddOnSetVariant,
    Bundle,
    BundleSyncLog,
    BundleTargetedItem,
    ProductGroup,
    ProductGroupItem,
    ShopifyShopConfig,
    WidgetStyle,
)
from .services import bundle_operations

ADMIN_TRIGGER = "django_admin"


@admin.register(ShopifyShopConfig)
class ShopifyShopConfigAdmin(admin.ModelAdmin):
    list_display = (
        "shopify_domain",
        "api_version",
        "shop_gid",
        "is_active",
        "updated_at",
    )
    list_filter = ("is_active",)
    search_fields = ("shopify_domain",)
    readonly_fields = ("created_at", "updated_at")


class BundleSyncMixin:
    """Re-sync the owning bundle after every change made through the admin.

    The sync runs in ``save_related`` so inline rows are saved first. A
    discount error is shown to the operator as an error message.
    """

    def bundle_id_for(self, obj):
        return obj.bundle_id

    def save_related(self, request, form, formsets, change):
        super().save_related(request, form, formsets, change)
        self.resync(request, self.bundle_id_for(form.instance))

    def delete_model(self, request, obj):
        bundle_id = self.bundle_id_for(obj)
        super().delete_model(request, obj)
        self.resync(request, bundle_id)

    def delete_queryset(self, request, queryset):
        bundle_ids = sorted({self.bundle_id_for(obj) for obj in queryset})
        super().delete_queryset(request, queryset)
        for bundle_id in bundle_ids:
            self.resync(request, bundle_id)

    def resync(self, request, bundle_id):
        result = bundle_operations.resync_bundle(bundle_id, trigger=ADMIN_TRIGGER)
        self.report(request, result)
        return result

    def report(self, request, result):
        if result.discount_error:
            self.message_user(
                request,
                f"Bundle {result.bundle_id}: checkout discount is out of date. "
                f"{result.discount_error}",
                level=messages.ERROR,
            )
        elif result.errors:
            self.message_user(
                request,
                f"Bundle {result.bundle_id} synced with errors: {'; '.join(result.errors)}",
                level=messages.WARNING,
            )


class AddOnSetInline(admin.TabularInline):
    model = AddOnSet
    extra = 0
    fields = (
        "position",
        "shopify_product_id",
        "product_title",
        "discount_type",
        "discount_value",
        "discount_label",
        "max_quantity",
        "subscription_only",
    )


class BundleTargetedItemInline(admin.TabularInline):
    model = BundleTargetedItem
    extra = 0


@admin.register(Bundle)
class BundleAdmin(BundleSyncMixin, admin.ModelAdmin):
    list_display = (
        "title",
        "shop",
        "status",
        "targeting_type",
        "selection_mode",
        "external_discount_id",
        "updated_at",
    )
    list_filter = (
        "status",
        "targeting_type",
    )
    search_fields = (
        "title",
        "shop__shopify_domain",
    )
    raw_id_fields = ("shop",)
    # Status and discount id only change through bundle_operations so the
    # discount and metafields follow.
    readonly_fields = (
        "status",
        "external_discount_id",
        "published_owner_ids",
        "created_at",
        "updated_at",
    )
    inlines = (AddOnSetInline, BundleTargetedItemInline)

    def bundle_id_for(self, obj):
        return obj.pk

    def save_model(self, request, obj, form, change):
        super().save_model(request, obj, form, change)
        if not change:
            WidgetStyle.objects.get_or_create(bundle=obj)

    def delete_model(self, request, obj):
        self.report(request, bundle_operations.delete_bundle(obj.pk))

    def delete_queryset(self, request, queryset):
        for bundle_id in list(queryset.values_list("pk", flat=True)):
            self.report(request, bundle_operations.delete_bundle(bundle_id))


class AddOnSetVariantFormSet(BaseInlineFormSet):
    def clean(self):
        super().clean()
        add_on = self.instance
        if add_on.bundle_id is None:
            return
        variant_ids = [
            form.cleaned_data["shopify_variant_id"]
            for form in self.forms
            if form.cleaned_data.get("shopify_variant_id")
            and not form.cleaned_data.get("DELETE")
        ]
        try:
            bundle_operations.validate_unique_variants(
                add_on.bundle, variant_ids, exclude_add_on_id=add_on.pk
            )
        except ValueError as exc:
            raise ValidationError(str(exc))


class AddOnSetVariantInline(admin.TabularInline):
    model = AddOnSetVariant
    formset = AddOnSetVariantFormSet
    extra = 0


@admin.register(AddOnSet)
class AddOnSetAdmin(BundleSyncMixin, admin.ModelAdmin):
    list_display = ("__str__", "bundle", "discount_type", "discount_value", "position")
    list_filter = ("discount_type",)
    raw_id_fields = ("bundle",)
    inlines = (AddOnSetVariantInline,)


class ProductGroupItemInline(admin.TabularInline):
    model = ProductGroupItem
    extra = 0


@admin.register(ProductGroup)
class ProductGroupAdmin(BundleSyncMixin, admin.ModelAdmin):
    list_display = ("title", "bundle", "position")
    raw_id_fields = ("bundle",)
    inlines = (ProductGroupItemInline,)


@admin.register(WidgetStyle)
class WidgetStyleAdmin(BundleSyncMixin, admin.ModelAdmin):
    list_display = ("bundle", "layout_type", "image_size", "updated_at")
    raw_id_fields = ("bundle",)


@admin.register(BundleSyncLog)
class BundleSyncLogAdmin(admin.ModelAdmin):
    list_display = (
        "bundle_id_snapshot",
        "shop_domain",
        "trigger",
        "status",
        "processing_time_ms",
        "created_at",
    )
    list_filter = (
        "status",
        "trigger",
    )
    search_fields = (
        "shop_domain",
        "bundle_id_snapshot",
    )
    readonly_fields = ("report", "discount_error", "processing_time_ms")
    date_hierarchy = "created_at"
    ordering = ("-created_at",)

from django.apps import AppConfig


class AddonBundlesConfig(AppConfig):
    name = "addon_bundles"
    verbose_name = "Add-On Bundles"
    default_auto_field = "django.db.models.AutoField"

from django.urls import path

from .views import BundleStatusView, BundleSyncView

urlpatterns = [
    path(
        "<int:bundle_id>/sync/",
        BundleSyncView.as_view(),
        name="addon_bundle_sync",
    ),
    path(
        "<int:bundle_id>/status/",
        BundleStatusView.as_view(),
        name="addon_bundle_status",
    ),
]

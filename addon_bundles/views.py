import logging

from rest_framework import status
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import Bundle
from .services.bundle_operations import set_bundle_status, sync_now
from .tasks import sync_bundle_task

logger = logging.getLogger(__name__)


def _result_response(result):
    """200 when the discount is in sync, 502 when Shopify rejected it."""
    code = status.HTTP_200_OK if result.success else status.HTTP_502_BAD_GATEWAY
    return Response(result.to_dict(), status=code)


class BaseBundleView(APIView):
    """Base view for operator actions on one bundle.

    Resolves ``bundle_id`` and maps a missing bundle to 404 and invalid
    input (``ValueError``) to 400. Subclasses implement ``handle``.
    """

    permission_classes = [IsAdminUser]

    def post(self, request, bundle_id):
        if not Bundle.objects.filter(pk=bundle_id).exists():
            return Response(
                {"error": f"Bundle {bundle_id} not found"},
                status=status.HTTP_404_NOT_FOUND,
            )
        try:
            return self.handle(request, bundle_id)
        except ValueError as exc:
            logger.warning("Rejected %s for bundle %s: %s", self.__class__.__name__, bundle_id, exc)
            return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

    def handle(self, request, bundle_id):
        raise NotImplementedError


class BundleSyncView(BaseBundleView):
    """Manual re-sync. ``{"async": true}`` enqueues it instead."""

    def handle(self, request, bundle_id):
        if request.data.get("async"):
            sync_bundle_task.send(bundle_id, "api")
            logger.info("Enqueued sync for bundle %s", bundle_id)
            return Response({"bundle_id": bundle_id, "enqueued": True}, status=status.HTTP_202_ACCEPTED)
        return _result_response(sync_now(bundle_id))


class BundleStatusView(BaseBundleView):
    """Move a bundle to ``{"status": "DRAFT" | "ACTIVE" | "ARCHIVED"}``."""

    def handle(self, request, bundle_id):
        new_status = request.data.get("status")
        if not new_status:
            raise ValueError("Missing status")
        result = set_bundle_status(bundle_id, new_status)
        logger.info("Bundle %s set to %s via API (success=%s)", bundle_id, new_status, result.success)
        return _result_response(result)

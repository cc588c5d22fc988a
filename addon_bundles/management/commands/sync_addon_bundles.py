"""
Re-sync add-on bundles with Shopify.

Usage:
    python3 manage.py sync_addon_bundles --bundle-id 42

    # Every bundle of one shop, via the task queue
    python3 manage.py sync_addon_bundles --shop example.myshopify.com --enqueue

    # Every bundle of every active shop
    python3 manage.py sync_addon_bundles --all
"""

import logging

from django.core.management.base import BaseCommand, CommandError

from addon_bundles.models import Bundle
from addon_bundles.services.bundle_operations import sync_now
from addon_bundles.tasks import sync_bundle_task

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Rebuild and republish widget and discount configs for add-on bundles"

    def add_arguments(self, parser):
        parser.add_argument(
            "--bundle-id",
            type=int,
            help="Sync a single bundle.",
        )
        parser.add_argument(
            "--shop",
            type=str,
            help="Sync every bundle of this shop domain (e.g. example.myshopify.com).",
        )
        parser.add_argument(
            "--all",
            action="store_true",
            dest="sync_all",
            help="Sync every bundle of every active shop.",
        )
        parser.add_argument(
            "--enqueue",
            action="store_true",
            help="Send each bundle to the task queue instead of syncing inline.",
        )

    def handle(self, *args, **options):
        bundles = Bundle.objects.filter(shop__is_active=True).order_by("pk")
        if options["bundle_id"]:
            bundles = bundles.filter(pk=options["bundle_id"])
        elif options["shop"]:
            bundles = bundles.filter(shop__shopify_domain=options["shop"])
        elif not options["sync_all"]:
            raise CommandError("Pass --bundle-id, --shop or --all")

        bundle_ids = list(bundles.values_list("pk", flat=True))
        if not bundle_ids:
            self.stdout.write(self.style.WARNING("No bundles matched"))
            return

        failures = 0
        for bundle_id in bundle_ids:
            if options["enqueue"]:
                sync_bundle_task.send(bundle_id, "management_command")
                self.stdout.write(f"  Enqueued bundle {bundle_id}")
                continue

            result = sync_now(bundle_id)
            report = result.sync_report
            if result.success and report is not None and report.ok:
                self.stdout.write(
                    self.style.SUCCESS(
                        f"  Bundle {bundle_id}: {len(report.slots)} slots synced"
                    )
                )
            else:
                failures += 1
                self.stdout.write(
                    self.style.ERROR(
                        f"  Bundle {bundle_id}: discount_error={result.discount_error} "
                        f"errors={result.errors}"
                    )
                )

        summary = f"{len(bundle_ids)} bundles processed, {failures} with errors"
        if failures:
            self.stdout.write(self.style.WARNING(summary))
        else:
            self.stdout.write(self.style.SUCCESS(summary))

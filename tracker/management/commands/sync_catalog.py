from django.core.management.base import BaseCommand, CommandError

from tracker.catalog import CatalogClient, sync_catalog
from tracker.exceptions import CatalogError


class Command(BaseCommand):
    help = "Fill leetcode_url and problem_types on solved records from the LeetCode catalog."

    def add_arguments(self, parser):
        parser.add_argument("--endpoint", default=None, help="GraphQL endpoint override.")

    def handle(self, *args, **options):
        with CatalogClient(options["endpoint"]) as client:
            try:
                updated = sync_catalog(client)
            except CatalogError as e:
                raise CommandError(str(e)) from e
        self.stdout.write(self.style.SUCCESS(f"Updated {updated} records."))

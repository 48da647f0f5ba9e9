"""
Django management command to clear cached query embeddings.

Without options, drops every entry for the configured provider. ``--expired`` removes
only expired rows from the database cache backend and is meant to be run on a
schedule.
"""

from django.core.management.base import BaseCommand, CommandError

from django_ai_rag.contrib.documents.services import get_query_cache


class Command(BaseCommand):
    help = "Invalidate or sweep the query embedding cache"

    def add_arguments(self, parser):
        parser.add_argument(
            "--provider",
            help="Provider whose entries should be dropped (defaults to the configured one)",
        )
        parser.add_argument(
            "--expired",
            action="store_true",
            help="Only delete expired entries (database cache backend only)",
        )

    def handle(self, *args, **options):
        cache = get_query_cache()
        if not cache.enabled:
            self.stdout.write(self.style.WARNING("Query embedding cache is disabled"))
            return

        if options["expired"]:
            purge_expired = getattr(cache.backend, "purge_expired", None)
            if purge_expired is None:
                raise CommandError(
                    f"{type(cache.backend).__name__} expires entries on its own; "
                    "--expired needs the database cache backend"
                )
            removed = purge_expired()
            self.stdout.write(
                self.style.SUCCESS(f"Removed {removed} expired cache entries")
            )
            return

        provider = options["provider"] or cache.provider_name
        removed = cache.invalidate_provider(provider)
        if removed is None:
            self.stdout.write(
                self.style.SUCCESS(f"Invalidated query embedding cache for '{provider}'")
            )
        else:
            self.stdout.write(
                self.style.SUCCESS(
                    f"Removed {removed} cache entries for provider '{provider}'"
                )
            )

from django.core.management.base import BaseCommand

from apps.chat.maintenance import cleanup_stale_messages


class Command(BaseCommand):
    help = "Delete chat messages stamped before their tenant registered."

    def handle(self, *args, **options):
        deleted = cleanup_stale_messages()
        self.stdout.write(self.style.SUCCESS(f"Message cleanup completed: {deleted} deleted"))

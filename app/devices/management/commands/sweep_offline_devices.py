from django.core.management.base import BaseCommand

from devices.services.registry import sweep_offline_devices


class Command(BaseCommand):
    help = "Mark devices without a recent heartbeat as OFFLINE"

    def handle(self, *args, **options):
        total = sweep_offline_devices()
        self.stdout.write(self.style.SUCCESS(f"Marked {total} devices offline"))

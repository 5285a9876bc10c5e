from django.core.management.base import BaseCommand

from payments.services import EscrowService


class Command(BaseCommand):
    help = "Releases held escrows that are past their auto-release date"

    def handle(self, *args, **options):
        self.stdout.write("Releasing due escrows...")
        results = EscrowService.sweep_due_escrows()
        for result in results:
            if result["succeeded"]:
                self.stdout.write(f"  released {result['id']}")
            else:
                self.stdout.write(
                    self.style.WARNING(
                        f"  skipped {result['id']}: {result['error']} {result['detail']}"
                    )
                )
        released = sum(1 for result in results if result["succeeded"])
        self.stdout.write(
            self.style.SUCCESS(f"Released {released} of {len(results)} due escrow(s).")
        )

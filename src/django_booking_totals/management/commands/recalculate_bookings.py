"""Management command to find and repair bookings whose stored totals drifted."""

from django.core.management.base import BaseCommand
from django.db import transaction

from django_booking_totals.engine import compute_booking_totals, recalculate_booking_totals
from django_booking_totals.exceptions import BookingTotalsError
from django_booking_totals.models import Booking


class Command(BaseCommand):
    help = "Compare stored booking totals with live totals and recalculate drifted bookings"

    def add_arguments(self, parser):
        parser.add_argument(
            "--booking",
            action="append",
            dest="bookings",
            help="Only check this booking id (repeatable)",
        )
        parser.add_argument(
            "--status",
            type=str,
            help="Only check bookings with this status (e.g., confirmed)",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report drifted bookings without writing",
        )

    def handle(self, *args, **options):
        dry_run = options.get("dry_run", False)

        bookings = Booking.objects.order_by("created_at")
        if options.get("bookings"):
            bookings = bookings.filter(pk__in=options["bookings"])
        if options.get("status"):
            bookings = bookings.filter(status=options["status"])

        checked = 0
        drifted = 0
        fixed = 0
        failed = []

        for booking in bookings.iterator():
            checked += 1
            try:
                live = compute_booking_totals(booking)
            except BookingTotalsError as e:
                failed.append((booking.pk, str(e)))
                self.stdout.write(self.style.ERROR(f"  ERROR {booking.pk}: {e}"))
                continue

            if live.matches(booking):
                continue

            drifted += 1
            self.stdout.write(
                f"  {self.style.WARNING('DRIFT')} {booking.booking_code or booking.pk}: "
                f"stored total {booking.total_amount} -> live {live.total}"
            )
            if dry_run:
                continue

            try:
                with transaction.atomic():
                    recalculate_booking_totals(booking.pk)
            except BookingTotalsError as e:
                failed.append((booking.pk, str(e)))
                self.stdout.write(self.style.ERROR(f"  ERROR {booking.pk}: {e}"))
                continue
            fixed += 1

        self.stdout.write("")
        self.stdout.write(f"  Checked: {checked}")
        self.stdout.write(f"  Drifted: {drifted}")
        if not dry_run:
            self.stdout.write(f"  {self.style.SUCCESS('Fixed')}: {fixed}")

        if failed:
            self.stdout.write(self.style.ERROR(f"{len(failed)} booking(s) could not be recalculated"))
            raise SystemExit(1)

        self.stdout.write(self.style.SUCCESS("Done."))

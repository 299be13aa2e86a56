"""Django app configuration for django-booking-totals."""

from django.apps import AppConfig


class DjangoBookingTotalsConfig(AppConfig):
    """App configuration for django-booking-totals."""

    name = 'django_booking_totals'
    label = 'django_booking_totals'
    verbose_name = 'Booking Totals'
    default_auto_field = 'django.db.models.BigAutoField'

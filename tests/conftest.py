"""Pytest configuration for django-booking-totals tests."""

from datetime import date
from decimal import Decimal

import pytest

from django_booking_totals.models import (
    Booking,
    BookingItem,
    BookingTent,
    Item,
    MenuItem,
    Parameter,
    Voucher,
    Zone,
)
from django_booking_totals.pricing import AddonLine, TentParameterLine


CHECK_IN = date(2025, 6, 2)
CHECK_OUT = date(2025, 6, 4)


@pytest.fixture
def user(db, django_user_model):
    """Create a test user."""
    return django_user_model.objects.create_user(
        username="frontdesk",
        password="testpass123",
        first_name="Lan",
        last_name="Nguyen",
    )


@pytest.fixture
def zone(db):
    return Zone.objects.create(name="Pine Valley")


@pytest.fixture
def other_zone(db):
    return Zone.objects.create(name="Lakeside")


@pytest.fixture
def tent_item(zone):
    return Item.objects.create(zone=zone, name="Safari Tent", kind=Item.Kind.TENT)


@pytest.fixture
def other_tent_item(zone):
    return Item.objects.create(zone=zone, name="Bell Tent", kind=Item.Kind.TENT)


@pytest.fixture
def addon_item(zone):
    return Item.objects.create(zone=zone, name="BBQ Set", kind=Item.Kind.ADDON)


@pytest.fixture
def adults(db):
    return Parameter.objects.create(name="Adults", controls_inventory=True)


@pytest.fixture
def children(db):
    return Parameter.objects.create(name="Children")


@pytest.fixture
def menu_item(zone):
    return MenuItem.objects.create(
        zone=zone,
        name="Breakfast",
        category="Food",
        price=Decimal("120000"),
    )


@pytest.fixture
def booking(db):
    """An empty booking with a 10% VAT invoice."""
    return Booking.objects.create(
        booking_code="GH-0001",
        check_in_date=CHECK_IN,
        check_out_date=CHECK_OUT,
        currency="VND",
        tax_invoice_required=True,
        tax_rate=Decimal("10"),
    )


@pytest.fixture
def make_voucher(db):
    """Factory for vouchers; defaults to an active 10% per-booking code."""

    def _make(code="SUMMER10", **kwargs):
        values = {
            "name": code.title(),
            "code": code,
            "discount_type": Voucher.DiscountType.PERCENTAGE,
            "amount": Decimal("10"),
        }
        values.update(kwargs)
        return Voucher.objects.create(**values)

    return _make


@pytest.fixture
def make_tent(booking, tent_item, adults):
    """Write a tent with parameter rows directly, bypassing the services."""

    def _make(quantity=2, unit_price=Decimal("1000000"), pricing_mode="per_person", **kwargs):
        line = TentParameterLine(
            pricing_mode=pricing_mode,
            check_in_date=CHECK_IN,
            check_out_date=CHECK_OUT,
        )
        subtotal = line.amount(quantity, unit_price)
        values = {
            "booking": booking,
            "item": tent_item,
            "check_in_date": CHECK_IN,
            "check_out_date": CHECK_OUT,
            "subtotal": subtotal,
        }
        values.update(kwargs)
        tent = BookingTent.objects.create(**values)
        BookingItem.objects.create(
            booking=booking,
            booking_tent=tent,
            item=tent.item,
            parameter=adults,
            quantity=quantity,
            unit_price=unit_price,
            metadata=line.to_metadata(),
        )
        return tent

    return _make


@pytest.fixture
def make_addon_row(booking, addon_item, adults):
    """Write one add-on row directly."""

    def _make(quantity=2, unit_price=Decimal("150000"), line=None, **kwargs):
        values = {
            "booking": booking,
            "item": addon_item,
            "parameter": adults,
            "quantity": quantity,
            "unit_price": unit_price,
            "metadata": (line or AddonLine()).to_metadata(),
        }
        values.update(kwargs)
        return BookingItem.objects.create(**values)

    return _make


@pytest.fixture
def scenario_a(booking, make_tent, make_addon_row):
    """One tent at 2,000,000 and a 2 x 150,000 add-on, no voucher."""
    tent = make_tent()
    make_addon_row()
    return booking, tent

# Generated manually for standalone django-booking-totals package

import uuid
from decimal import Decimal

import django.db.models.deletion
import django.db.models.functions.text
from django.conf import settings
from django.db import migrations, models


def amount(**kwargs):
    return models.DecimalField(decimal_places=4, max_digits=19, **kwargs)


def rate(**kwargs):
    return models.DecimalField(decimal_places=3, max_digits=6, **kwargs)


def big_id():
    return models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")


def uuid_id():
    return models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)


def timestamps():
    return [
        ("created_at", models.DateTimeField(auto_now_add=True)),
        ("updated_at", models.DateTimeField(auto_now=True)),
    ]


def voucher_snapshot():
    return [
        ("voucher_code", models.CharField(blank=True, max_length=50, null=True)),
        ("discount_type", models.CharField(blank=True, default="", max_length=20)),
        ("discount_value", amount(default=Decimal("0"))),
        ("discount_amount", amount(default=Decimal("0"))),
        ("discount_application_method", models.CharField(blank=True, default="", max_length=30)),
        (
            "voucher",
            models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to="django_booking_totals.voucher",
            ),
        ),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Zone",
            fields=[
                ("id", big_id()),
                *timestamps(),
                ("name", models.CharField(max_length=255)),
            ],
        ),
        migrations.CreateModel(
            name="Parameter",
            fields=[
                ("id", big_id()),
                *timestamps(),
                ("name", models.CharField(max_length=255)),
                (
                    "controls_inventory",
                    models.BooleanField(
                        default=False,
                        help_text="Whether booked quantity consumes shared item inventory",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="Item",
            fields=[
                ("id", big_id()),
                *timestamps(),
                ("name", models.CharField(max_length=255)),
                (
                    "kind",
                    models.CharField(
                        choices=[("tent", "Tent"), ("addon", "Add-on")],
                        default="tent",
                        max_length=10,
                    ),
                ),
                (
                    "tax_rate",
                    rate(
                        blank=True,
                        null=True,
                        help_text="Item VAT rate in percent (null = use booking rate)",
                    ),
                ),
                (
                    "zone",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="items",
                        to="django_booking_totals.zone",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="MenuItem",
            fields=[
                ("id", big_id()),
                *timestamps(),
                ("name", models.CharField(max_length=255)),
                ("category", models.CharField(blank=True, default="", max_length=255)),
                ("price", amount(default=Decimal("0"))),
                ("tax_rate", rate(default=Decimal("0"), help_text="VAT rate in percent")),
                (
                    "zone",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="menu_items",
                        to="django_booking_totals.zone",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="Voucher",
            fields=[
                ("id", big_id()),
                *timestamps(),
                ("name", models.CharField(max_length=255)),
                ("code", models.CharField(blank=True, max_length=50, null=True)),
                (
                    "discount_type",
                    models.CharField(
                        choices=[("percentage", "Percentage"), ("fixed", "Fixed amount")],
                        max_length=20,
                    ),
                ),
                ("amount", amount(help_text="Percent or fixed amount")),
                (
                    "apply_type",
                    models.CharField(
                        choices=[("per_booking", "Per booking"), ("per_item", "Per item")],
                        default="per_booking",
                        max_length=20,
                    ),
                ),
                ("apply_after_tax", models.BooleanField(default=False)),
                (
                    "application_type",
                    models.CharField(
                        choices=[("all", "All"), ("tent", "Accommodation"), ("menu", "Menu")],
                        default="all",
                        max_length=10,
                    ),
                ),
                (
                    "recurrence",
                    models.CharField(
                        choices=[
                            ("always", "Always"),
                            ("date_range", "Date range"),
                            ("one_time", "One time"),
                        ],
                        default="always",
                        max_length=20,
                    ),
                ),
                ("start_date", models.DateField(blank=True, null=True)),
                ("end_date", models.DateField(blank=True, null=True)),
                (
                    "weekly_days",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Allowed check-in weekdays, Sunday=0 (empty = every day)",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("inactive", "Inactive")],
                        default="active",
                        max_length=10,
                    ),
                ),
                ("max_uses", models.PositiveIntegerField(blank=True, null=True)),
                ("current_uses", models.PositiveIntegerField(default=0)),
                (
                    "zone",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="vouchers",
                        to="django_booking_totals.zone",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        django.db.models.functions.text.Upper("code"),
                        condition=models.Q(("code__isnull", False)),
                        name="voucher_code_unique_ci",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("amount__gte", 0)),
                        name="voucher_amount_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="VoucherItem",
            fields=[
                ("id", big_id()),
                (
                    "voucher",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="scope_items",
                        to="django_booking_totals.voucher",
                    ),
                ),
                (
                    "item",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        to="django_booking_totals.item",
                    ),
                ),
                (
                    "menu_item",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        to="django_booking_totals.menuitem",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("item__isnull", False), ("menu_item__isnull", True)),
                            models.Q(("item__isnull", True), ("menu_item__isnull", False)),
                            _connector="OR",
                        ),
                        name="voucheritem_exactly_one_target",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Booking",
            fields=[
                ("id", uuid_id()),
                *timestamps(),
                ("booking_code", models.CharField(blank=True, db_index=True, default="", max_length=30)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("confirmed", "Confirmed"),
                            ("checked_in", "Checked in"),
                            ("checked_out", "Checked out"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending payment"),
                            ("deposit_paid", "Deposit paid"),
                            ("fully_paid", "Fully paid"),
                            ("refund_pending", "Refund pending"),
                            ("refunded", "Refunded"),
                            ("no_refund", "No refund"),
                            ("expired", "Expired"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("check_in_date", models.DateField(blank=True, null=True)),
                ("check_out_date", models.DateField(blank=True, null=True)),
                ("currency", models.CharField(default="VND", max_length=3)),
                ("tax_invoice_required", models.BooleanField(default=False)),
                ("tax_rate", rate(default=Decimal("10"), help_text="VAT percent")),
                ("subtotal_amount", amount(default=Decimal("0"))),
                ("tax_amount", amount(default=Decimal("0"))),
                ("discount_amount", amount(default=Decimal("0"))),
                ("total_amount", amount(default=Decimal("0"))),
                ("deposit_due", amount(default=Decimal("0"))),
                ("version", models.PositiveIntegerField(default=0)),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("subtotal_amount__gte", 0)),
                        name="booking_subtotal_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("discount_amount__gte", 0)),
                        name="booking_discount_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("total_amount__gte", 0)),
                        name="booking_total_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BookingTent",
            fields=[
                *voucher_snapshot(),
                ("id", uuid_id()),
                *timestamps(),
                ("check_in_date", models.DateField()),
                ("check_out_date", models.DateField()),
                (
                    "subtotal",
                    amount(
                        default=Decimal("0"),
                        help_text="Computed from parameter lines (pre-discount)",
                    ),
                ),
                (
                    "subtotal_override",
                    amount(
                        blank=True,
                        null=True,
                        help_text="Admin manual override; wins over subtotal when set",
                    ),
                ),
                ("special_requests", models.TextField(blank=True, default="")),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="tents",
                        to="django_booking_totals.booking",
                    ),
                ),
                (
                    "item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="booking_tents",
                        to="django_booking_totals.item",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("check_out_date__gte", models.F("check_in_date"))),
                        name="bookingtent_checkout_after_checkin",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("subtotal__gte", 0)),
                        name="bookingtent_subtotal_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BookingParameter",
            fields=[
                ("id", uuid_id()),
                ("label", models.CharField(help_text="Parameter name snapshot", max_length=255)),
                ("booked_quantity", models.PositiveIntegerField()),
                ("controls_inventory", models.BooleanField(default=False)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="parameters",
                        to="django_booking_totals.booking",
                    ),
                ),
                (
                    "booking_tent",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="parameters",
                        to="django_booking_totals.bookingtent",
                    ),
                ),
                (
                    "parameter",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="+",
                        to="django_booking_totals.parameter",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="BookingItem",
            fields=[
                ("id", uuid_id()),
                *timestamps(),
                ("quantity", models.PositiveIntegerField()),
                ("unit_price", amount()),
                ("metadata", models.JSONField(blank=True, default=dict)),
                (
                    "total_price",
                    models.GeneratedField(
                        db_persist=True,
                        expression=models.ExpressionWrapper(
                            models.F("quantity") * models.F("unit_price"),
                            output_field=models.DecimalField(decimal_places=4, max_digits=19),
                        ),
                        output_field=models.DecimalField(decimal_places=4, max_digits=19),
                    ),
                ),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="django_booking_totals.booking",
                    ),
                ),
                (
                    "booking_tent",
                    models.ForeignKey(
                        blank=True,
                        help_text="Null for add-ons shared across the whole booking",
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="django_booking_totals.bookingtent",
                    ),
                ),
                (
                    "item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="+",
                        to="django_booking_totals.item",
                    ),
                ),
                (
                    "parameter",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="+",
                        to="django_booking_totals.parameter",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("unit_price__gte", 0)),
                        name="bookingitem_unit_price_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BookingMenuProduct",
            fields=[
                *voucher_snapshot(),
                ("id", uuid_id()),
                *timestamps(),
                ("quantity", models.PositiveIntegerField()),
                ("unit_price", amount()),
                (
                    "total_price",
                    amount(help_text="subtotal_override or quantity * unit_price, written by the editor"),
                ),
                ("subtotal_override", amount(blank=True, null=True)),
                ("serving_date", models.DateField(blank=True, null=True)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="menu_products",
                        to="django_booking_totals.booking",
                    ),
                ),
                (
                    "booking_tent",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="menu_products",
                        to="django_booking_totals.bookingtent",
                    ),
                ),
                (
                    "menu_item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="+",
                        to="django_booking_totals.menuitem",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("total_price__gte", 0)),
                        name="bookingmenuproduct_total_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BookingAdditionalCost",
            fields=[
                ("id", uuid_id()),
                *timestamps(),
                ("name", models.CharField(max_length=255)),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("unit_price", amount()),
                ("total_price", amount()),
                ("tax_rate", rate(default=Decimal("0"))),
                ("tax_amount", amount(default=Decimal("0"))),
                ("notes", models.TextField(blank=True, default="")),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="additional_costs",
                        to="django_booking_totals.booking",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("quantity__gt", 0)),
                        name="bookingadditionalcost_quantity_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("unit_price__gte", 0)),
                        name="bookingadditionalcost_unit_price_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BookingPayment",
            fields=[
                ("id", uuid_id()),
                *timestamps(),
                ("amount", amount()),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("successful", "Successful"),
                            ("completed", "Completed"),
                            ("paid", "Paid"),
                            ("failed", "Failed"),
                            ("refunded", "Refunded"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("payment_method", models.CharField(blank=True, default="", max_length=50)),
                ("reference", models.CharField(blank=True, default="", max_length=255)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="django_booking_totals.booking",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="bookingpayment_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BookingEditLog",
            fields=[
                ("id", uuid_id()),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                (
                    "actor_display",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Snapshot of actor identity",
                        max_length=200,
                    ),
                ),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("item_add", "Item added"),
                            ("item_edit", "Item edited"),
                            ("item_delete", "Item deleted"),
                        ],
                        db_index=True,
                        max_length=20,
                    ),
                ),
                ("description", models.TextField()),
                ("metadata", models.JSONField(blank=True, default=dict)),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="booking_edit_logs",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="edit_logs",
                        to="django_booking_totals.booking",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(fields=["booking", "created_at"], name="bookingeditlog_booking_created"),
                ],
            },
        ),
    ]

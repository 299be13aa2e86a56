"""Booking tree, voucher, payment and edit-log models.

The Booking row caches four derived totals (subtotal, tax, discount, total)
that are rewritten by the recalculation engine on every admin mutation.
Child tables (tents, parameters, items, menu products) are the source of
truth; balance due is never stored.

Reference tables (Zone, Item, Parameter, MenuItem) are kept minimal: the
wider system owns their admin screens, the engine only resolves against them.
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.db.models.functions import Upper

from django_booking_totals.money import Money


AMOUNT = dict(max_digits=19, decimal_places=4)
RATE = dict(max_digits=6, decimal_places=3)


class TimeStampedModel(models.Model):
    """Abstract base model with created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class UUIDModel(models.Model):
    """Abstract base model with UUID primary key."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Meta:
        abstract = True


# =============================================================================
# Reference data
# =============================================================================


class Zone(TimeStampedModel):
    """A glamping site grouping items, menu and vouchers."""

    name = models.CharField(max_length=255)

    class Meta:
        app_label = 'django_booking_totals'

    def __str__(self):
        return self.name


class Item(TimeStampedModel):
    """A bookable accommodation unit type or a common (add-on) item."""

    class Kind(models.TextChoices):
        TENT = 'tent', 'Tent'
        ADDON = 'addon', 'Add-on'

    zone = models.ForeignKey(Zone, on_delete=models.PROTECT, related_name='items')
    name = models.CharField(max_length=255)
    kind = models.CharField(max_length=10, choices=Kind.choices, default=Kind.TENT)
    tax_rate = models.DecimalField(
        **RATE,
        null=True,
        blank=True,
        help_text="Item VAT rate in percent (null = use booking rate)",
    )

    class Meta:
        app_label = 'django_booking_totals'

    def __str__(self):
        return self.name


class Parameter(TimeStampedModel):
    """A guest category (Adults, Children, ...) priced per tent."""

    name = models.CharField(max_length=255)
    controls_inventory = models.BooleanField(
        default=False,
        help_text="Whether booked quantity consumes shared item inventory",
    )

    class Meta:
        app_label = 'django_booking_totals'

    def __str__(self):
        return self.name


class MenuItem(TimeStampedModel):
    """A food or service product sold with a booking."""

    zone = models.ForeignKey(Zone, on_delete=models.PROTECT, related_name='menu_items')
    name = models.CharField(max_length=255)
    category = models.CharField(max_length=255, blank=True, default='')
    price = models.DecimalField(**AMOUNT, default=Decimal('0'))
    tax_rate = models.DecimalField(
        **RATE,
        default=Decimal('0'),
        help_text="VAT rate in percent",
    )

    class Meta:
        app_label = 'django_booking_totals'

    def __str__(self):
        return self.name


# =============================================================================
# Vouchers
# =============================================================================


class Voucher(TimeStampedModel):
    """Discount code (glamping_discounts).

    current_uses is only ever changed through an atomic F() increment at the
    moment a code is newly attached to a line, never by recalculation.
    """

    class DiscountType(models.TextChoices):
        PERCENTAGE = 'percentage', 'Percentage'
        FIXED = 'fixed', 'Fixed amount'

    class ApplyType(models.TextChoices):
        PER_BOOKING = 'per_booking', 'Per booking'
        PER_ITEM = 'per_item', 'Per item'

    class ApplicationType(models.TextChoices):
        ALL = 'all', 'All'
        TENT = 'tent', 'Accommodation'
        MENU = 'menu', 'Menu'

    class Recurrence(models.TextChoices):
        ALWAYS = 'always', 'Always'
        DATE_RANGE = 'date_range', 'Date range'
        ONE_TIME = 'one_time', 'One time'

    class Status(models.TextChoices):
        ACTIVE = 'active', 'Active'
        INACTIVE = 'inactive', 'Inactive'

    name = models.CharField(max_length=255)
    code = models.CharField(max_length=50, null=True, blank=True)
    zone = models.ForeignKey(
        Zone,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='vouchers',
    )
    discount_type = models.CharField(max_length=20, choices=DiscountType.choices)
    amount = models.DecimalField(**AMOUNT, help_text="Percent or fixed amount")
    apply_type = models.CharField(
        max_length=20,
        choices=ApplyType.choices,
        default=ApplyType.PER_BOOKING,
    )
    apply_after_tax = models.BooleanField(default=False)
    application_type = models.CharField(
        max_length=10,
        choices=ApplicationType.choices,
        default=ApplicationType.ALL,
    )
    recurrence = models.CharField(
        max_length=20,
        choices=Recurrence.choices,
        default=Recurrence.ALWAYS,
    )
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    weekly_days = models.JSONField(
        default=list,
        blank=True,
        help_text="Allowed check-in weekdays, Sunday=0 (empty = every day)",
    )
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.ACTIVE)
    max_uses = models.PositiveIntegerField(null=True, blank=True)
    current_uses = models.PositiveIntegerField(default=0)

    class Meta:
        app_label = 'django_booking_totals'
        constraints = [
            models.UniqueConstraint(
                Upper('code'),
                condition=Q(code__isnull=False),
                name='voucher_code_unique_ci',
            ),
            models.CheckConstraint(
                condition=Q(amount__gte=0),
                name='voucher_amount_non_negative',
            ),
        ]

    def __str__(self):
        return f"{self.code or self.name} ({self.discount_type} {self.amount})"

    @property
    def application_method(self) -> str:
        """per_item | per_booking_before_tax | per_booking_after_tax."""
        if self.apply_type == self.ApplyType.PER_ITEM:
            return 'per_item'
        if self.apply_after_tax:
            return 'per_booking_after_tax'
        return 'per_booking_before_tax'


class VoucherItem(models.Model):
    """Restricts a voucher to specific accommodation items or menu items."""

    voucher = models.ForeignKey(Voucher, on_delete=models.CASCADE, related_name='scope_items')
    item = models.ForeignKey(Item, on_delete=models.CASCADE, null=True, blank=True)
    menu_item = models.ForeignKey(MenuItem, on_delete=models.CASCADE, null=True, blank=True)

    class Meta:
        app_label = 'django_booking_totals'
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(item__isnull=False, menu_item__isnull=True)
                    | Q(item__isnull=True, menu_item__isnull=False)
                ),
                name='voucheritem_exactly_one_target',
            ),
        ]

    def __str__(self):
        return f"{self.voucher_id} -> {self.item_id or self.menu_item_id}"


class VoucherSnapshotFields(models.Model):
    """Voucher snapshot copied onto a line when a code is applied.

    At most one active voucher per line. discount_amount is frozen at apply
    time; recalculation sums it without re-validating.
    """

    voucher = models.ForeignKey(
        Voucher,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    voucher_code = models.CharField(max_length=50, null=True, blank=True)
    discount_type = models.CharField(max_length=20, blank=True, default='')
    discount_value = models.DecimalField(**AMOUNT, default=Decimal('0'))
    discount_amount = models.DecimalField(**AMOUNT, default=Decimal('0'))
    discount_application_method = models.CharField(max_length=30, blank=True, default='')

    class Meta:
        abstract = True

    @property
    def has_voucher(self) -> bool:
        return bool(self.voucher_code)

    def apply_voucher(self, validation):
        """Copy a successful VoucherValidation onto this line."""
        self.voucher_id = validation.voucher_id
        self.voucher_code = validation.code
        self.discount_type = validation.discount_type
        self.discount_value = validation.discount_value
        self.discount_amount = validation.discount_amount
        self.discount_application_method = validation.application_method

    def clear_voucher(self):
        self.voucher_id = None
        self.voucher_code = None
        self.discount_type = ''
        self.discount_value = Decimal('0')
        self.discount_amount = Decimal('0')
        self.discount_application_method = ''


# =============================================================================
# Booking tree
# =============================================================================


class Booking(UUIDModel, TimeStampedModel):
    """Root aggregate of a glamping booking.

    subtotal/tax/discount/total are cached derivations, rewritten by
    recalculate_booking_totals(). deposit_due is written at checkout and only
    read here (its ratio to total_amount is reapplied to live totals).
    """

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        CONFIRMED = 'confirmed', 'Confirmed'
        CHECKED_IN = 'checked_in', 'Checked in'
        CHECKED_OUT = 'checked_out', 'Checked out'
        CANCELLED = 'cancelled', 'Cancelled'

    class PaymentStatus(models.TextChoices):
        PENDING = 'pending', 'Pending payment'
        DEPOSIT_PAID = 'deposit_paid', 'Deposit paid'
        FULLY_PAID = 'fully_paid', 'Fully paid'
        REFUND_PENDING = 'refund_pending', 'Refund pending'
        REFUNDED = 'refunded', 'Refunded'
        NO_REFUND = 'no_refund', 'No refund'
        EXPIRED = 'expired', 'Expired'

    booking_code = models.CharField(max_length=30, blank=True, default='', db_index=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    check_in_date = models.DateField(null=True, blank=True)
    check_out_date = models.DateField(null=True, blank=True)
    currency = models.CharField(max_length=3, default='VND')

    # Tax configuration snapshot
    tax_invoice_required = models.BooleanField(default=False)
    tax_rate = models.DecimalField(**RATE, default=Decimal('10'), help_text="VAT percent")

    # Derived totals (rewritten by the recalculation engine)
    subtotal_amount = models.DecimalField(**AMOUNT, default=Decimal('0'))
    tax_amount = models.DecimalField(**AMOUNT, default=Decimal('0'))
    discount_amount = models.DecimalField(**AMOUNT, default=Decimal('0'))
    total_amount = models.DecimalField(**AMOUNT, default=Decimal('0'))

    deposit_due = models.DecimalField(**AMOUNT, default=Decimal('0'))

    # Bumped on every recompute; used for compare-and-swap by editors
    version = models.PositiveIntegerField(default=0)

    class Meta:
        app_label = 'django_booking_totals'
        ordering = ['-created_at']
        constraints = [
            models.CheckConstraint(
                condition=Q(subtotal_amount__gte=0),
                name='booking_subtotal_non_negative',
            ),
            models.CheckConstraint(
                condition=Q(discount_amount__gte=0),
                name='booking_discount_non_negative',
            ),
            models.CheckConstraint(
                condition=Q(total_amount__gte=0),
                name='booking_total_non_negative',
            ),
        ]

    def __str__(self):
        return f"Booking {self.booking_code or self.pk} - {self.total} ({self.status})"

    @property
    def subtotal(self) -> Money:
        return Money(self.subtotal_amount, self.currency)

    @property
    def tax(self) -> Money:
        return Money(self.tax_amount, self.currency)

    @property
    def discount(self) -> Money:
        return Money(self.discount_amount, self.currency)

    @property
    def total(self) -> Money:
        return Money(self.total_amount, self.currency)


class BookingTent(UUIDModel, TimeStampedModel, VoucherSnapshotFields):
    """One accommodation unit booked within a Booking."""

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='tents')
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name='booking_tents')
    check_in_date = models.DateField()
    check_out_date = models.DateField()
    subtotal = models.DecimalField(
        **AMOUNT,
        default=Decimal('0'),
        help_text="Computed from parameter lines (pre-discount)",
    )
    subtotal_override = models.DecimalField(
        **AMOUNT,
        null=True,
        blank=True,
        help_text="Admin manual override; wins over subtotal when set",
    )
    special_requests = models.TextField(blank=True, default='')

    class Meta:
        app_label = 'django_booking_totals'
        ordering = ['created_at']
        constraints = [
            models.CheckConstraint(
                condition=Q(check_out_date__gte=F('check_in_date')),
                name='bookingtent_checkout_after_checkin',
            ),
            models.CheckConstraint(
                condition=Q(subtotal__gte=0),
                name='bookingtent_subtotal_non_negative',
            ),
        ]

    def __str__(self):
        return f"{self.item} {self.check_in_date} - {self.check_out_date}"

    @property
    def nights(self) -> int:
        """Nights stayed; a same-day stay counts as one."""
        return max(1, (self.check_out_date - self.check_in_date).days)

    @property
    def effective_subtotal(self) -> Decimal:
        if self.subtotal_override is not None:
            return self.subtotal_override
        return self.subtotal


class BookingParameter(UUIDModel):
    """Guest-count line of a tent; replaced wholesale with its tent's parameter set."""

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='parameters')
    booking_tent = models.ForeignKey(
        BookingTent,
        on_delete=models.CASCADE,
        related_name='parameters',
    )
    parameter = models.ForeignKey(Parameter, on_delete=models.PROTECT, related_name='+')
    label = models.CharField(max_length=255, help_text="Parameter name snapshot")
    booked_quantity = models.PositiveIntegerField()
    controls_inventory = models.BooleanField(default=False)

    class Meta:
        app_label = 'django_booking_totals'

    def __str__(self):
        return f"{self.label} x{self.booked_quantity}"


class BookingItem(UUIDModel, TimeStampedModel):
    """A priced line: a tent's parameter pricing row or an add-on row.

    total_price is a database-generated column (quantity * unit_price).
    It ignores pricing mode and price overrides, so the aggregators never
    read it; use as_line() and pricing.line_amount() instead.
    """

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='items')
    booking_tent = models.ForeignKey(
        BookingTent,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='items',
        help_text="Null for add-ons shared across the whole booking",
    )
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name='+')
    parameter = models.ForeignKey(
        Parameter,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+',
    )
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(**AMOUNT)
    metadata = models.JSONField(default=dict, blank=True)
    total_price = models.GeneratedField(
        expression=models.ExpressionWrapper(
            F('quantity') * F('unit_price'),
            output_field=models.DecimalField(**AMOUNT),
        ),
        output_field=models.DecimalField(**AMOUNT),
        db_persist=True,
    )

    class Meta:
        app_label = 'django_booking_totals'
        ordering = ['created_at']
        constraints = [
            models.CheckConstraint(
                condition=Q(unit_price__gte=0),
                name='bookingitem_unit_price_non_negative',
            ),
        ]

    def __str__(self):
        return f"{self.item} x{self.quantity} @ {self.unit_price}"

    @property
    def is_addon(self) -> bool:
        return (self.metadata or {}).get('type') == 'addon'

    def as_line(self):
        """Interpret metadata as a TentParameterLine or AddonLine."""
        from django_booking_totals.pricing import parse_line

        return parse_line(self.metadata, line_id=self.pk)


class BookingMenuProduct(UUIDModel, TimeStampedModel, VoucherSnapshotFields):
    """Food/service line. total_price is stored and written explicitly."""

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='menu_products')
    booking_tent = models.ForeignKey(
        BookingTent,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='menu_products',
    )
    menu_item = models.ForeignKey(MenuItem, on_delete=models.PROTECT, related_name='+')
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(**AMOUNT)
    total_price = models.DecimalField(
        **AMOUNT,
        help_text="subtotal_override or quantity * unit_price, written by the editor",
    )
    subtotal_override = models.DecimalField(**AMOUNT, null=True, blank=True)
    serving_date = models.DateField(null=True, blank=True)

    class Meta:
        app_label = 'django_booking_totals'
        ordering = ['created_at']
        constraints = [
            models.CheckConstraint(
                condition=Q(total_price__gte=0),
                name='bookingmenuproduct_total_non_negative',
            ),
        ]

    def __str__(self):
        return f"{self.menu_item} x{self.quantity} = {self.total_price}"


class BookingAdditionalCost(UUIDModel, TimeStampedModel):
    """Extra charge added by staff after checkout (charged on top of the total)."""

    booking = models.ForeignKey(
        Booking,
        on_delete=models.CASCADE,
        related_name='additional_costs',
    )
    name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(**AMOUNT)
    total_price = models.DecimalField(**AMOUNT)
    tax_rate = models.DecimalField(**RATE, default=Decimal('0'))
    tax_amount = models.DecimalField(**AMOUNT, default=Decimal('0'))
    notes = models.TextField(blank=True, default='')
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )

    class Meta:
        app_label = 'django_booking_totals'
        ordering = ['created_at']
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gt=0),
                name='bookingadditionalcost_quantity_positive',
            ),
            models.CheckConstraint(
                condition=Q(unit_price__gte=0),
                name='bookingadditionalcost_unit_price_non_negative',
            ),
        ]

    def __str__(self):
        return f"{self.name} x{self.quantity} = {self.total_price}"


# =============================================================================
# Payments ledger (read-only for the engine)
# =============================================================================


class BookingPayment(UUIDModel, TimeStampedModel):
    """Append-only payment row recorded by the payments subsystem."""

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        SUCCESSFUL = 'successful', 'Successful'
        COMPLETED = 'completed', 'Completed'
        PAID = 'paid', 'Paid'
        FAILED = 'failed', 'Failed'
        REFUNDED = 'refunded', 'Refunded'

    booking = models.ForeignKey(Booking, on_delete=models.PROTECT, related_name='payments')
    amount = models.DecimalField(**AMOUNT)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    payment_method = models.CharField(max_length=50, blank=True, default='')
    reference = models.CharField(max_length=255, blank=True, default='')

    class Meta:
        app_label = 'django_booking_totals'
        ordering = ['created_at']
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name='bookingpayment_amount_positive',
            ),
        ]

    def __str__(self):
        return f"{self.amount} ({self.status})"


# =============================================================================
# Edit audit trail
# =============================================================================


class BookingEditLog(UUIDModel):
    """Immutable record of an admin edit to a booking's line items.

    Written in the same transaction as the edit it describes.
    """

    class Action(models.TextChoices):
        ITEM_ADD = 'item_add', 'Item added'
        ITEM_EDIT = 'item_edit', 'Item edited'
        ITEM_DELETE = 'item_delete', 'Item deleted'

    booking = models.ForeignKey(Booking, on_delete=models.PROTECT, related_name='edit_logs')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='booking_edit_logs',
    )
    actor_display = models.CharField(
        max_length=200,
        blank=True,
        default='',
        help_text="Snapshot of actor identity",
    )
    action = models.CharField(max_length=20, choices=Action.choices, db_index=True)
    description = models.TextField()
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        app_label = 'django_booking_totals'
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['booking', 'created_at'], name='bookingeditlog_booking_created'),
        ]

    def __str__(self):
        actor = self.actor_display or 'System'
        return f"{actor} {self.action}: {self.description[:50]}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Booking edit logs are immutable and cannot be updated")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Booking edit logs are immutable and cannot be deleted")

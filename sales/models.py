from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from catalog.models import Product


class Order(models.Model):
    class OrderType(models.TextChoices):
        DINE_IN = "dine-in", "Dine In"
        TAKE_AWAY = "take-away", "Take Away"

    class PaymentMethod(models.TextChoices):
        CASH = "cash", "Cash"
        CREDIT = "credit", "Credit"
        DEBIT = "debit", "Debit"
        TRANSFER = "transfer", "Transfer"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"
        CANCELLED = "cancelled", "Cancelled"

    order_number = models.CharField(max_length=32, unique=True)
    customer_name = models.CharField(max_length=100)
    order_type = models.CharField(max_length=16, choices=OrderType.choices)
    table_number = models.CharField(max_length=16, null=True, blank=True)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2)
    grand_total = models.DecimalField(max_digits=12, decimal_places=2)
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2)
    payment_method = models.CharField(max_length=16, choices=PaymentMethod.choices, default=PaymentMethod.CASH)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PAID)
    cashier = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="orders")
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["cashier", "created_at"], name="order_cashier_created_idx"),
            models.Index(fields=["order_type", "created_at"], name="order_type_created_idx"),
        ]

    def __str__(self):
        return self.order_number

    @property
    def change(self):
        return self.amount_paid - self.grand_total


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="order_items")
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    price = models.DecimalField(max_digits=12, decimal_places=2)
    notes = models.CharField(max_length=255, null=True, blank=True)

    class Meta:
        ordering = ["id"]

    @property
    def line_total(self):
        return self.price * self.quantity


class OrderSequence(models.Model):
    """Last order number handed out for one local calendar day."""

    day = models.DateField(primary_key=True)
    last_value = models.PositiveIntegerField(default=0)

    def __str__(self):
        return f"{self.day:%Y%m%d}:{self.last_value}"

import logging
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Prefetch
from rest_framework.exceptions import NotFound, ValidationError

from catalog.services import find_products_by_ids
from common.exceptions import ConflictError, InsufficientPaymentError
from common.utils import to_money
from sales.models import Order, OrderItem
from sales.numbering import next_order_number

logger = logging.getLogger("sales.orders")


def validate_table_number(order_type, table_number):
    if order_type == Order.OrderType.DINE_IN and not table_number:
        raise ValidationError({"table_number": ["Table number is required for dine-in orders."]})
    if order_type == Order.OrderType.TAKE_AWAY and table_number:
        raise ValidationError({"table_number": ["Table number is not allowed for take-away orders."]})


def calculate_totals(item_rows, tax_rate=None):
    """Return `(subtotal, tax_amount, grand_total)` for priced item rows."""
    if tax_rate is None:
        tax_rate = settings.ORDER_TAX_RATE
    subtotal = sum((row["price"] * row["quantity"] for row in item_rows), Decimal("0"))
    subtotal = to_money(subtotal)
    tax_amount = to_money(subtotal * Decimal(tax_rate))
    return subtotal, tax_amount, subtotal + tax_amount


def load_order(order_id):
    return (
        Order.objects.select_related("cashier")
        .prefetch_related(
            Prefetch("items", queryset=OrderItem.objects.select_related("product__category").order_by("id"))
        )
        .get(pk=order_id)
    )


@transaction.atomic
def create_order_transactional(order_fields, item_rows):
    order = Order.objects.create(**order_fields)
    OrderItem.objects.bulk_create([OrderItem(order=order, **row) for row in item_rows])
    return order


def _price_items(items):
    requested_ids = {item["product_id"] for item in items}
    products = {product.id: product for product in find_products_by_ids(requested_ids)}
    if len(products) != len(requested_ids):
        raise NotFound("One or more items not found.")

    return [
        {
            "product": products[item["product_id"]],
            "quantity": item["quantity"],
            "price": products[item["product_id"]].price,
            "notes": item.get("notes") or None,
        }
        for item in items
    ]


def _create_order_once(cart, cashier, *, resync):
    order_type = cart["order_type"]
    table_number = cart.get("table_number") or None
    validate_table_number(order_type, table_number)

    items = cart.get("items") or []
    if not items:
        raise ValidationError({"items": ["At least one item is required."]})

    item_rows = _price_items(items)
    subtotal, tax_amount, grand_total = calculate_totals(item_rows)

    amount_paid = to_money(cart["amount_paid"])
    if amount_paid < grand_total:
        raise InsufficientPaymentError()

    order_fields = {
        "order_number": next_order_number(resync=resync),
        "customer_name": cart["customer_name"],
        "order_type": order_type,
        "table_number": table_number,
        "subtotal": subtotal,
        "tax_amount": tax_amount,
        "grand_total": grand_total,
        "amount_paid": amount_paid,
        "payment_method": cart.get("payment_method") or Order.PaymentMethod.CASH,
        "status": Order.Status.PAID,
        "cashier": cashier,
    }
    return create_order_transactional(order_fields, item_rows)


def create_order(cart, cashier):
    """Price `cart` against the catalog and store it as a paid order.

    Everything happens in one transaction. A clash on the order number rolls
    the attempt back and retries it with the day counter resynchronized.
    """
    max_attempts = settings.ORDER_NUMBER_MAX_ATTEMPTS
    for attempt in range(1, max_attempts + 1):
        try:
            with transaction.atomic():
                order = _create_order_once(cart, cashier, resync=attempt > 1)
        except IntegrityError:
            logger.warning("order_number_conflict attempt=%s max_attempts=%s", attempt, max_attempts)
            continue

        logger.info(
            "order_created",
            extra={"order_number": order.order_number, "user_id": str(cashier.id)},
        )
        return load_order(order.pk)

    raise ConflictError("Could not allocate a unique order number. Please retry.")

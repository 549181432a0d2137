import logging
import math
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from django.db.models import Exists, Min, OuterRef, Prefetch, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from catalog.services import find_category_by_id
from common.utils import consistent_read, local_day_bounds
from sales.models import Order, OrderItem

logger = logging.getLogger("sales.reports")


@dataclass(frozen=True)
class ReportFilters:
    start_date: date | None = None
    end_date: date | None = None
    order_type: str | None = None
    category_id: int | None = None

    def __post_init__(self):
        if (self.start_date is None) != (self.end_date is None):
            raise ValidationError({"date_range": ["Both start_date and end_date are required."]})
        if self.start_date and self.start_date > self.end_date:
            raise ValidationError({"date_range": ["start_date must be before or equal to end_date."]})
        if self.order_type and self.order_type not in Order.OrderType.values:
            raise ValidationError({"order_type": [f"Unknown order type {self.order_type!r}."]})


@dataclass(frozen=True)
class Pagination:
    page: int = 1
    limit: int = 10

    @property
    def offset(self):
        return (self.page - 1) * self.limit


def filtered_orders(cashier_id=None, filters=None):
    filters = filters or ReportFilters()
    queryset = Order.objects.all()

    if cashier_id is not None:
        queryset = queryset.filter(cashier_id=cashier_id)

    if filters.start_date:
        start, _ = local_day_bounds(filters.start_date)
        _, end = local_day_bounds(filters.end_date)
        queryset = queryset.filter(created_at__gte=start, created_at__lt=end)

    if filters.order_type:
        queryset = queryset.filter(order_type=filters.order_type)

    if filters.category_id is not None:
        if find_category_by_id(filters.category_id) is None:
            raise NotFound("Category not found.")
        in_category = OrderItem.objects.filter(order=OuterRef("pk"), product__category_id=filters.category_id)
        queryset = queryset.filter(Exists(in_category))

    return queryset


def summarize_orders(queryset):
    totals = queryset.aggregate(total_omzet=Coalesce(Sum("grand_total"), Decimal("0.00")))
    items = OrderItem.objects.filter(order__in=queryset.values("pk"))
    all_menu_sales = items.aggregate(units=Coalesce(Sum("quantity"), 0))["units"]

    sales_by_category = {}
    rows = (
        items.values("product__category__name", "product__name")
        .annotate(units=Sum("quantity"), first_item=Min("id"))
        .order_by("first_item")
    )
    for row in rows:
        products = sales_by_category.setdefault(row["product__category__name"], {})
        products[row["product__name"]] = row["units"]

    return {
        "total_order": queryset.count(),
        "total_omzet": totals["total_omzet"],
        "all_menu_sales": all_menu_sales,
        "sales_by_category": sales_by_category,
    }


def _report_row(order):
    category_names = dict.fromkeys(item.product.category.name for item in order.items.all())
    return {
        "id": order.id,
        "order_number": order.order_number,
        "order_date": timezone.localtime(order.created_at),
        "order_type": order.order_type,
        "customer_name": order.customer_name,
        "category": ", ".join(category_names),
        "grand_total": order.grand_total,
    }


def find_orders_for_report(queryset, pagination=None):
    """Return `(rows, total_count)` for `queryset`, newest orders first."""
    total_count = queryset.count()
    ordered = queryset.order_by("-created_at", "-id").prefetch_related(
        Prefetch("items", queryset=OrderItem.objects.select_related("product__category").order_by("id"))
    )
    if pagination is not None:
        ordered = ordered[pagination.offset:pagination.offset + pagination.limit]
    return [_report_row(order) for order in ordered], total_count


def generate_sales_report(cashier_id=None, filters=None, pagination=None):
    pagination = pagination or Pagination()
    with consistent_read():
        queryset = filtered_orders(cashier_id, filters)
        summary = summarize_orders(queryset)
        rows, total_items = find_orders_for_report(queryset, pagination)

    logger.info("sales_report_generated", extra={"report_rows": len(rows)})
    return {
        "summary": summary,
        "orders": {
            "data": rows,
            "current_page": pagination.page,
            "total_pages": math.ceil(total_items / pagination.limit) if total_items else 0,
            "total_items": total_items,
        },
    }


def get_full_report_data(cashier_id=None, filters=None):
    with consistent_read():
        queryset = filtered_orders(cashier_id, filters)
        summary = summarize_orders(queryset)
        rows, _ = find_orders_for_report(queryset)

    logger.info("sales_report_collected", extra={"report_rows": len(rows)})
    return {"summary": summary, "orders": rows}

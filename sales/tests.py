import threading
from datetime import date, timedelta
from decimal import Decimal
from io import BytesIO
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import connection
from django.test import TestCase, TransactionTestCase, override_settings, skipUnlessDBFeature
from django.utils import timezone
from openpyxl import load_workbook
from reportlab.pdfbase.pdfmetrics import stringWidth
from rest_framework.test import APIClient

from catalog.models import Category, Product
from common.exceptions import OrderNumberIntegrityError
from core.models import AuditLog
from sales.exports import fit_text
from sales.models import Order, OrderItem, OrderSequence
from sales.numbering import find_latest_order_on_day, next_order_number
from sales.reports import Pagination, ReportFilters, generate_sales_report, get_full_report_data
from sales.services import calculate_totals, create_order


def make_order(cashier, lines, *, number, created_at=None, order_type=Order.OrderType.TAKE_AWAY):
    """Store an order directly, bypassing numbering, for report fixtures."""
    rows = [{"product": product, "quantity": quantity, "price": product.price} for product, quantity in lines]
    subtotal, tax_amount, grand_total = calculate_totals(rows)
    order = Order.objects.create(
        order_number=number,
        customer_name="Walk In",
        order_type=order_type,
        table_number="7" if order_type == Order.OrderType.DINE_IN else None,
        subtotal=subtotal,
        tax_amount=tax_amount,
        grand_total=grand_total,
        amount_paid=grand_total,
        cashier=cashier,
        created_at=created_at or timezone.now(),
    )
    OrderItem.objects.bulk_create([OrderItem(order=order, **row) for row in rows])
    return order


class SalesFixtureMixin:
    def setUp(self):
        user_model = get_user_model()
        self.cashier = user_model.objects.create_user(username="kasir1", password="pass1234")
        self.other_cashier = user_model.objects.create_user(username="kasir2", password="pass1234")
        self.admin = user_model.objects.create_user(username="boss", password="pass1234", role="admin")
        self.foods = Category.objects.create(name="Foods")
        self.drinks = Category.objects.create(name="Drinks")
        self.nasi = Product.objects.create(category=self.foods, name="Nasi Goreng Spesial", price=Decimal("35000"))
        self.mie = Product.objects.create(category=self.foods, name="Mie Ayam Bakso", price=Decimal("25000"))
        self.teh = Product.objects.create(category=self.drinks, name="Es Teh Manis", price=Decimal("8000"))
        self.client = APIClient()

    def cart(self, **overrides):
        payload = {
            "customer_name": "Budi",
            "order_type": "take-away",
            "amount_paid": "100000",
            "items": [{"product_id": self.nasi.id, "quantity": 2}],
        }
        payload.update(overrides)
        return payload


class OrderNumberingTests(SalesFixtureMixin, TestCase):
    def test_first_order_of_the_day_gets_0001(self):
        self.assertEqual(next_order_number(date(2025, 10, 13)), "ORD-20251013-0001")

    def test_numbers_increase_within_a_day_and_reset_the_next_day(self):
        numbers = [next_order_number(date(2025, 10, 13)) for _ in range(3)]

        self.assertEqual(numbers, ["ORD-20251013-0001", "ORD-20251013-0002", "ORD-20251013-0003"])
        self.assertEqual(next_order_number(date(2025, 10, 14)), "ORD-20251014-0001")

    def test_counter_is_seeded_from_latest_order_of_the_day(self):
        make_order(self.cashier, [(self.teh, 1)], number=f"ORD-{timezone.localdate():%Y%m%d}-0007")

        self.assertEqual(next_order_number(), f"ORD-{timezone.localdate():%Y%m%d}-0008")
        self.assertEqual(OrderSequence.objects.get(day=timezone.localdate()).last_value, 8)

    def test_orders_from_other_days_are_ignored_when_seeding(self):
        yesterday = timezone.now() - timedelta(days=1)
        make_order(self.cashier, [(self.teh, 1)], number="ORD-20000101-0042", created_at=yesterday)

        self.assertTrue(next_order_number().endswith("-0001"))

    def test_malformed_latest_order_number_is_fatal(self):
        make_order(self.cashier, [(self.teh, 1)], number="LEGACY-42")

        with self.assertRaises(OrderNumberIntegrityError):
            next_order_number()
        self.assertFalse(OrderSequence.objects.exists())

    def test_find_latest_order_on_day_uses_created_at(self):
        now = timezone.now()
        make_order(self.cashier, [(self.teh, 1)], number="ORD-X-0002", created_at=now - timedelta(seconds=30))
        latest = make_order(self.cashier, [(self.teh, 1)], number="ORD-X-0001", created_at=now)

        self.assertEqual(find_latest_order_on_day(timezone.localdate(now)), latest)
        self.assertIsNone(find_latest_order_on_day(date(2000, 1, 1)))

    def test_resync_moves_counter_past_stored_orders(self):
        today = timezone.localdate()
        OrderSequence.objects.create(day=today, last_value=1)
        make_order(self.cashier, [(self.teh, 1)], number=f"ORD-{today:%Y%m%d}-0005")

        self.assertEqual(next_order_number(resync=True), f"ORD-{today:%Y%m%d}-0006")

    def test_counter_row_created_by_another_transaction_is_reused(self):
        today = date(2025, 10, 13)

        def row_appears_while_seeding(day):
            OrderSequence.objects.create(day=day, last_value=4)
            return 0

        with patch("sales.numbering._last_used_sequence", side_effect=row_appears_while_seeding):
            number = next_order_number(today)

        self.assertEqual(number, "ORD-20251013-0005")
        self.assertEqual(OrderSequence.objects.get(day=today).last_value, 5)
        self.assertEqual(OrderSequence.objects.count(), 1)


class CreateOrderServiceTests(SalesFixtureMixin, TestCase):
    def test_totals_use_catalog_price_and_tax(self):
        order = create_order(
            {
                "customer_name": "Budi",
                "order_type": "take-away",
                "amount_paid": Decimal("100000"),
                "items": [{"product_id": self.nasi.id, "quantity": 2}],
            },
            self.cashier,
        )

        self.assertEqual(order.subtotal, Decimal("70000.00"))
        self.assertEqual(order.tax_amount, Decimal("7700.00"))
        self.assertEqual(order.grand_total, Decimal("77700.00"))
        self.assertEqual(order.change, Decimal("22300.00"))
        self.assertEqual(order.status, Order.Status.PAID)
        self.assertEqual(order.payment_method, Order.PaymentMethod.CASH)
        self.assertRegex(order.order_number, rf"^ORD-{timezone.localdate():%Y%m%d}-0001$")

    def test_repeated_product_lines_are_priced_individually(self):
        order = create_order(
            {
                "customer_name": "Budi",
                "order_type": "take-away",
                "amount_paid": Decimal("200000"),
                "items": [
                    {"product_id": self.teh.id, "quantity": 1},
                    {"product_id": self.teh.id, "quantity": 2, "notes": "less sugar"},
                    {"product_id": self.mie.id, "quantity": 1},
                ],
            },
            self.cashier,
        )

        self.assertEqual(order.items.count(), 3)
        self.assertEqual(order.subtotal, sum((item.line_total for item in order.items.all()), Decimal("0")))
        self.assertEqual(order.grand_total, order.subtotal + order.tax_amount)

    def test_tax_rounds_half_up(self):
        cheap = Product.objects.create(category=self.drinks, name="Permen", price=Decimal("0.05"))

        order = create_order(
            {
                "customer_name": "Budi",
                "order_type": "take-away",
                "amount_paid": Decimal("1"),
                "items": [{"product_id": cheap.id, "quantity": 1}],
            },
            self.cashier,
        )

        self.assertEqual(order.tax_amount, Decimal("0.01"))

    @override_settings(ORDER_TAX_RATE=Decimal("0.10"))
    def test_tax_rate_is_configurable(self):
        order = create_order(
            {
                "customer_name": "Budi",
                "order_type": "take-away",
                "amount_paid": Decimal("100000"),
                "items": [{"product_id": self.nasi.id, "quantity": 2}],
            },
            self.cashier,
        )

        self.assertEqual(order.tax_amount, Decimal("7000.00"))

    def test_conflicting_order_number_is_retried_with_resync(self):
        today = timezone.localdate()
        OrderSequence.objects.create(day=today, last_value=0)
        make_order(self.cashier, [(self.teh, 1)], number=f"ORD-{today:%Y%m%d}-0001")

        with self.assertLogs("sales.orders", level="WARNING") as logs:
            order = create_order(
                {
                    "customer_name": "Budi",
                    "order_type": "take-away",
                    "amount_paid": Decimal("100000"),
                    "items": [{"product_id": self.nasi.id, "quantity": 1}],
                },
                self.cashier,
            )

        self.assertEqual(order.order_number, f"ORD-{today:%Y%m%d}-0002")
        self.assertTrue(any("order_number_conflict" in entry for entry in logs.output))


class OrderApiTests(SalesFixtureMixin, TestCase):
    def test_end_to_end_order_creation(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.post("/api/v1/orders/", self.cart(), format="json", HTTP_X_REQUEST_ID="req-order")

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["subtotal"], "70000.00")
        self.assertEqual(payload["tax_amount"], "7700.00")
        self.assertEqual(payload["grand_total"], "77700.00")
        self.assertEqual(payload["change"], "22300.00")
        self.assertEqual(payload["status"], "paid")
        self.assertEqual(payload["cashier_username"], "kasir1")
        self.assertEqual(payload["items"][0]["price"], "35000.00")
        self.assertEqual(payload["items"][0]["category_name"], "Foods")
        self.assertTrue(AuditLog.objects.filter(action="order.create", request_id="req-order").exists())

    def test_price_snapshot_survives_catalog_changes(self):
        self.client.force_authenticate(user=self.cashier)
        order_id = self.client.post("/api/v1/orders/", self.cart(), format="json").json()["id"]

        Product.objects.filter(id=self.nasi.id).update(price=Decimal("50000"))
        response = self.client.get(f"/api/v1/orders/{order_id}/")

        self.assertEqual(response.json()["items"][0]["price"], "35000.00")
        self.assertEqual(response.json()["grand_total"], "77700.00")

    def test_insufficient_payment_persists_nothing(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.post("/api/v1/orders/", self.cart(amount_paid="77699.99"), format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "insufficient_payment")
        self.assertEqual(response.json()["message"], "Insufficient payment.")
        self.assertFalse(Order.objects.exists())
        self.assertFalse(OrderItem.objects.exists())
        self.assertFalse(OrderSequence.objects.exists())

    def test_exact_payment_is_accepted(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.post("/api/v1/orders/", self.cart(amount_paid="77700"), format="json")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["change"], "0.00")

    def test_unknown_product_returns_not_found_and_persists_nothing(self):
        self.client.force_authenticate(user=self.cashier)
        items = [{"product_id": self.nasi.id, "quantity": 1}, {"product_id": 999999, "quantity": 1}]

        response = self.client.post("/api/v1/orders/", self.cart(items=items), format="json")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["message"], "One or more items not found.")
        self.assertFalse(Order.objects.exists())
        self.assertFalse(OrderItem.objects.exists())

    def test_dine_in_requires_table_number(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.post("/api/v1/orders/", self.cart(order_type="dine-in"), format="json")

        self.assertEqual(response.status_code, 400)
        self.assertIn("table_number", response.json()["errors"])

    def test_take_away_rejects_table_number(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.post("/api/v1/orders/", self.cart(table_number="12"), format="json")

        self.assertEqual(response.status_code, 400)
        self.assertIn("table_number", response.json()["errors"])

    def test_dine_in_with_table_number(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.post(
            "/api/v1/orders/",
            self.cart(order_type="dine-in", table_number="12", payment_method="debit"),
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["table_number"], "12")
        self.assertEqual(response.json()["payment_method"], "debit")

    def test_cart_validation(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.post(
            "/api/v1/orders/",
            self.cart(customer_name="Al", items=[{"product_id": self.nasi.id, "quantity": 0}]),
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        errors = response.json()["errors"]
        self.assertIn("customer_name", errors)
        self.assertIn("items", errors)

    def test_empty_cart_is_rejected(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.post("/api/v1/orders/", self.cart(items=[]), format="json")

        self.assertEqual(response.status_code, 400)

    def test_sequential_orders_get_distinct_numbers(self):
        self.client.force_authenticate(user=self.cashier)

        numbers = [self.client.post("/api/v1/orders/", self.cart(), format="json").json()["order_number"] for _ in range(5)]

        prefix = f"ORD-{timezone.localdate():%Y%m%d}-"
        self.assertEqual(numbers, [f"{prefix}{index:04d}" for index in range(1, 6)])

    def test_exhausted_retries_return_conflict(self):
        self.client.force_authenticate(user=self.cashier)
        existing = make_order(self.cashier, [(self.teh, 1)], number="ORD-20250101-0001")

        with patch("sales.services.next_order_number", return_value=existing.order_number):
            with self.assertLogs("sales.orders", level="WARNING"):
                response = self.client.post("/api/v1/orders/", self.cart(), format="json")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(Order.objects.count(), 1)

    def test_malformed_stored_number_returns_integrity_error(self):
        self.client.force_authenticate(user=self.cashier)
        make_order(self.cashier, [(self.teh, 1)], number="BROKEN")

        with self.assertLogs("common.exceptions", level="ERROR"):
            response = self.client.post("/api/v1/orders/", self.cart(), format="json")

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["code"], "data_integrity_error")
        self.assertEqual(Order.objects.count(), 1)

    def test_cashier_lists_only_own_orders(self):
        make_order(self.cashier, [(self.teh, 1)], number="ORD-20250101-0001")
        make_order(self.other_cashier, [(self.teh, 1)], number="ORD-20250101-0002")
        self.client.force_authenticate(user=self.cashier)

        response = self.client.get("/api/v1/orders/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["total_items"], 1)
        self.assertEqual(payload["data"][0]["order_number"], "ORD-20250101-0001")

    def test_cashier_cannot_read_other_cashiers_order(self):
        other = make_order(self.other_cashier, [(self.teh, 1)], number="ORD-20250101-0002")
        self.client.force_authenticate(user=self.cashier)

        response = self.client.get(f"/api/v1/orders/{other.id}/")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not_found")

    def test_admin_lists_all_orders(self):
        make_order(self.cashier, [(self.teh, 1)], number="ORD-20250101-0001")
        make_order(self.other_cashier, [(self.teh, 1)], number="ORD-20250101-0002")
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/orders/", {"limit": 1})

        self.assertEqual(response.json()["total_items"], 2)
        self.assertEqual(response.json()["total_pages"], 2)

    def test_admin_can_ring_up_an_order(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post("/api/v1/orders/", self.cart(), format="json")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["cashier_username"], "boss")

    def test_orders_require_authentication(self):
        response = self.client.post("/api/v1/orders/", self.cart(), format="json")

        self.assertEqual(response.status_code, 401)


@skipUnlessDBFeature("has_select_for_update")
class ConcurrentOrderNumberingTests(TransactionTestCase):
    def setUp(self):
        self.cashier = get_user_model().objects.create_user(username="rush-cashier", password="pass1234")
        category = Category.objects.create(name="Foods")
        self.product = Product.objects.create(category=category, name="Nasi Goreng", price=Decimal("35000"))

    def test_parallel_orders_never_share_a_number(self):
        workers = 8
        numbers = []
        errors = []
        barrier = threading.Barrier(workers)

        def place_order():
            try:
                barrier.wait()
                order = create_order(
                    {
                        "customer_name": "Rush",
                        "order_type": "take-away",
                        "amount_paid": Decimal("100000"),
                        "items": [{"product_id": self.product.id, "quantity": 1}],
                    },
                    self.cashier,
                )
                numbers.append(order.order_number)
            except Exception as exc:
                errors.append(exc)
            finally:
                connection.close()

        threads = [threading.Thread(target=place_order) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        prefix = f"ORD-{timezone.localdate():%Y%m%d}-"
        self.assertEqual(sorted(numbers), [f"{prefix}{index:04d}" for index in range(1, workers + 1)])


class SalesReportTests(SalesFixtureMixin, TestCase):
    def test_empty_report_shape(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/reports/sales/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {
                "summary": {
                    "total_order": 0,
                    "total_omzet": "0.00",
                    "all_menu_sales": 0,
                    "sales_by_category": {},
                },
                "orders": {"data": [], "current_page": 1, "total_pages": 0, "total_items": 0},
            },
        )

    def test_pagination_returns_requested_slice_newest_first(self):
        base = timezone.now() - timedelta(hours=1)
        for index in range(1, 26):
            make_order(
                self.cashier,
                [(self.teh, 1)],
                number=f"ORD-20250101-{index:04d}",
                created_at=base + timedelta(minutes=index),
            )

        report = generate_sales_report(pagination=Pagination(page=2, limit=10))

        orders = report["orders"]
        self.assertEqual(orders["total_items"], 25)
        self.assertEqual(orders["total_pages"], 3)
        self.assertEqual(orders["current_page"], 2)
        self.assertEqual(
            [row["order_number"] for row in orders["data"]],
            [f"ORD-20250101-{index:04d}" for index in range(15, 5, -1)],
        )
        self.assertEqual(report["summary"]["total_order"], 25)

    def test_summary_aggregates_orders_and_units(self):
        make_order(self.cashier, [(self.nasi, 2), (self.teh, 3)], number="ORD-20250101-0001")
        make_order(self.cashier, [(self.mie, 1)], number="ORD-20250101-0002")

        summary = generate_sales_report()["summary"]

        self.assertEqual(summary["total_order"], 2)
        self.assertEqual(summary["all_menu_sales"], 6)
        self.assertEqual(summary["total_omzet"], Decimal("104340.00") + Decimal("27750.00"))
        self.assertEqual(
            summary["sales_by_category"],
            {
                "Drinks": {"Es Teh Manis": 3},
                "Foods": {"Mie Ayam Bakso": 1, "Nasi Goreng Spesial": 2},
            },
        )

    def test_sales_by_category_keeps_first_sold_order(self):
        make_order(self.cashier, [(self.nasi, 1), (self.teh, 1)], number="ORD-20250101-0001")
        make_order(self.cashier, [(self.mie, 2), (self.teh, 1)], number="ORD-20250101-0002")

        sales_by_category = generate_sales_report()["summary"]["sales_by_category"]

        self.assertEqual(list(sales_by_category), ["Foods", "Drinks"])
        self.assertEqual(list(sales_by_category["Foods"]), ["Nasi Goreng Spesial", "Mie Ayam Bakso"])
        self.assertEqual(sales_by_category["Drinks"], {"Es Teh Manis": 2})

    def test_category_filter_is_a_semi_join_over_whole_orders(self):
        mixed = make_order(self.cashier, [(self.nasi, 1), (self.teh, 2)], number="ORD-20250101-0001")
        make_order(self.cashier, [(self.mie, 1)], number="ORD-20250101-0002")

        report = generate_sales_report(filters=ReportFilters(category_id=self.drinks.id))

        summary = report["summary"]
        self.assertEqual(summary["total_order"], 1)
        self.assertEqual(summary["total_omzet"], mixed.grand_total)
        self.assertEqual(summary["all_menu_sales"], 3)
        self.assertEqual(set(summary["sales_by_category"]), {"Foods", "Drinks"})
        self.assertEqual(report["orders"]["data"][0]["category"], "Foods, Drinks")

    def test_unknown_category_is_not_found(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/reports/sales/", {"category_id": 999999})

        self.assertEqual(response.status_code, 404)

    def test_date_range_requires_both_ends(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/reports/sales/", {"start_date": "2025-10-01"})

        self.assertEqual(response.status_code, 400)
        self.assertIn("date_range", response.json()["errors"])

    def test_date_range_rejects_reversed_bounds(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/reports/sales/", {"start_date": "2025-10-02", "end_date": "2025-10-01"})

        self.assertEqual(response.status_code, 400)

    def test_date_range_is_inclusive_of_whole_days(self):
        now = timezone.now()
        make_order(self.cashier, [(self.teh, 1)], number="ORD-A-0001", created_at=now - timedelta(days=3))
        yesterday = make_order(self.cashier, [(self.teh, 1)], number="ORD-A-0002", created_at=now - timedelta(days=1))
        make_order(self.cashier, [(self.teh, 1)], number="ORD-A-0003", created_at=now)
        day = timezone.localdate(yesterday.created_at)

        report = generate_sales_report(filters=ReportFilters(start_date=day, end_date=day))

        self.assertEqual([row["order_number"] for row in report["orders"]["data"]], ["ORD-A-0002"])

    def test_order_type_filter(self):
        make_order(self.cashier, [(self.teh, 1)], number="ORD-A-0001", order_type=Order.OrderType.DINE_IN)
        make_order(self.cashier, [(self.teh, 1)], number="ORD-A-0002")
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/reports/sales/", {"order_type": "dine-in"})

        self.assertEqual(response.json()["summary"]["total_order"], 1)
        self.assertEqual(response.json()["orders"]["data"][0]["order_type"], "dine-in")

    def test_cashier_report_is_limited_to_own_orders(self):
        make_order(self.cashier, [(self.teh, 1)], number="ORD-A-0001")
        make_order(self.other_cashier, [(self.teh, 1)], number="ORD-A-0002")
        self.client.force_authenticate(user=self.cashier)

        response = self.client.get("/api/v1/reports/sales/", {"cashier_id": self.other_cashier.id})

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["order_number"] for row in response.json()["orders"]["data"]], ["ORD-A-0001"])

    def test_admin_can_narrow_report_to_one_cashier(self):
        make_order(self.cashier, [(self.teh, 1)], number="ORD-A-0001")
        make_order(self.other_cashier, [(self.teh, 1)], number="ORD-A-0002")
        self.client.force_authenticate(user=self.admin)

        everyone = self.client.get("/api/v1/reports/sales/").json()
        narrowed = self.client.get("/api/v1/reports/sales/", {"cashier_id": self.other_cashier.id}).json()

        self.assertEqual(everyone["summary"]["total_order"], 2)
        self.assertEqual([row["order_number"] for row in narrowed["orders"]["data"]], ["ORD-A-0002"])

    @override_settings(REPORT_MAX_PAGE_SIZE=50)
    def test_limit_is_capped(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/reports/sales/", {"limit": 51})

        self.assertEqual(response.status_code, 400)
        self.assertIn("limit", response.json()["errors"])

    def test_report_rows_serialize_money_and_dates(self):
        make_order(self.cashier, [(self.nasi, 2)], number="ORD-A-0001")
        self.client.force_authenticate(user=self.admin)

        row = self.client.get("/api/v1/reports/sales/").json()["orders"]["data"][0]

        self.assertEqual(row["grand_total"], "77700.00")
        self.assertEqual(row["category"], "Foods")
        self.assertEqual(row["customer_name"], "Walk In")
        self.assertIn("T", row["order_date"])

    def test_full_report_data_is_unpaginated(self):
        for index in range(1, 13):
            make_order(self.cashier, [(self.teh, 1)], number=f"ORD-A-{index:04d}")

        report = get_full_report_data()

        self.assertEqual(len(report["orders"]), 12)
        self.assertEqual(report["summary"]["total_order"], 12)


class SalesReportExportTests(SalesFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        make_order(self.cashier, [(self.nasi, 2), (self.teh, 1)], number="ORD-A-0001")
        make_order(self.other_cashier, [(self.mie, 1)], number="ORD-A-0002")

    def test_excel_export(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/reports/sales/export/excel/")

        self.assertEqual(response.status_code, 200)
        self.assertIn("attachment;", response["Content-Disposition"])
        self.assertTrue(response["Content-Disposition"].rstrip('"').endswith(".xlsx"))
        workbook = load_workbook(BytesIO(response.content))
        self.assertEqual(workbook.sheetnames, ["Summary", "Orders"])
        self.assertEqual(workbook["Summary"]["B1"].value, 2)
        orders = workbook["Orders"]
        self.assertEqual(orders.max_row, 3)
        self.assertEqual({orders["A2"].value, orders["A3"].value}, {"ORD-A-0001", "ORD-A-0002"})

    def test_excel_export_respects_cashier_scope(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.get("/api/v1/reports/sales/export/excel/")

        orders = load_workbook(BytesIO(response.content))["Orders"]
        self.assertEqual(orders.max_row, 2)
        self.assertEqual(orders["A2"].value, "ORD-A-0001")

    def test_pdf_export(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/reports/sales/export/pdf/", {"order_type": "take-away"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "application/pdf")
        self.assertTrue(response.content.startswith(b"%PDF"))

    def test_pdf_export_spans_pages_for_long_reports(self):
        for index in range(3, 120):
            make_order(self.cashier, [(self.teh, 1)], number=f"ORD-A-{index:04d}")
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/reports/sales/export/pdf/")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.content.startswith(b"%PDF"))
        self.assertGreater(len(response.content), len(self.client.get("/api/v1/reports/sales/export/pdf/", {"category_id": self.foods.id}).content))

    def test_export_validates_filters(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/reports/sales/export/pdf/", {"end_date": "2025-10-01"})

        self.assertEqual(response.status_code, 400)


class PdfCellFittingTests(TestCase):
    def test_short_text_is_unchanged(self):
        self.assertEqual(fit_text("77,700.00", 60), "77,700.00")

    def test_long_text_is_cut_with_an_ellipsis(self):
        categories = "Foods, Drinks, Desserts, Snacks, Coffee"

        fitted = fit_text(categories, 84)

        self.assertTrue(fitted.endswith("..."))
        self.assertTrue(categories.startswith(fitted[:-3]))
        self.assertLessEqual(stringWidth(fitted, "Helvetica", 9), 84)

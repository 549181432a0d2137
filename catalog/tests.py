from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from catalog.models import Category, Product
from catalog.services import find_category_by_id, find_products_by_ids
from core.models import AuditLog


class CatalogServiceTests(TestCase):
    def setUp(self):
        self.foods = Category.objects.create(name="Foods")
        self.nasi = Product.objects.create(category=self.foods, name="Nasi Goreng", price=Decimal("35000"))
        self.mie = Product.objects.create(category=self.foods, name="Mie Ayam", price=Decimal("25000"))

    def test_find_products_by_ids_ignores_duplicates_and_unknown_ids(self):
        products = find_products_by_ids([self.nasi.id, self.nasi.id, self.mie.id, 999999])

        self.assertEqual({product.id for product in products}, {self.nasi.id, self.mie.id})

    def test_find_category_by_id(self):
        self.assertEqual(find_category_by_id(self.foods.id), self.foods)
        self.assertIsNone(find_category_by_id(999999))


class CatalogApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        user_model = get_user_model()
        self.admin = user_model.objects.create_user(username="catalog-admin", password="pass1234", role="admin")
        self.cashier = user_model.objects.create_user(username="catalog-cashier", password="pass1234")
        self.foods = Category.objects.create(name="Foods")
        self.drinks = Category.objects.create(name="Drinks")
        for index in range(12):
            Product.objects.create(category=self.foods, name=f"Food {index:02d}", price=Decimal("10000"))
        Product.objects.create(category=self.drinks, name="Kopi Hitam", price=Decimal("10000"))

    def test_catalog_requires_authentication(self):
        response = self.client.get("/api/v1/products/")

        self.assertEqual(response.status_code, 401)

    def test_cashier_lists_categories_unpaginated(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.get("/api/v1/categories/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([item["name"] for item in response.json()], ["Drinks", "Foods"])

    def test_products_are_paginated_by_page_and_limit(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.get("/api/v1/products/", {"page": 2, "limit": 5})

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["current_page"], 2)
        self.assertEqual(payload["total_items"], 13)
        self.assertEqual(payload["total_pages"], 3)
        self.assertEqual(len(payload["data"]), 5)
        self.assertIn("category_name", payload["data"][0])

    def test_products_filter_by_category(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.get("/api/v1/products/", {"category_id": self.drinks.id})

        self.assertEqual([item["name"] for item in response.json()["data"]], ["Kopi Hitam"])

    def test_missing_product_returns_not_found_envelope(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.get("/api/v1/products/999999/")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not_found")

    def test_cashier_cannot_manage_catalog(self):
        self.client.force_authenticate(user=self.cashier)

        with self.assertLogs("security.authorization", level="WARNING"):
            response = self.client.post("/api/v1/categories/", {"name": "Snacks"}, format="json")

        self.assertEqual(response.status_code, 403)
        self.assertFalse(Category.objects.filter(name="Snacks").exists())

    def test_admin_creates_category_with_audit_log(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(
            "/api/v1/categories/",
            {"name": "Snacks"},
            format="json",
            HTTP_X_REQUEST_ID="req-cat",
        )

        self.assertEqual(response.status_code, 201)
        self.assertTrue(AuditLog.objects.filter(action="category.create", request_id="req-cat").exists())

    def test_duplicate_category_name_conflicts(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post("/api/v1/categories/", {"name": "foods"}, format="json")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "conflict")

    def test_renaming_category_to_its_own_name_is_allowed(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(f"/api/v1/categories/{self.foods.id}/", {"name": "Foods"}, format="json")

        self.assertEqual(response.status_code, 200)

    def test_deleting_category_with_products_conflicts(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(f"/api/v1/categories/{self.foods.id}/")

        self.assertEqual(response.status_code, 409)
        self.assertTrue(Category.objects.filter(id=self.foods.id).exists())

    def test_admin_deletes_empty_category(self):
        empty = Category.objects.create(name="Dessert")
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(f"/api/v1/categories/{empty.id}/")

        self.assertEqual(response.status_code, 204)
        self.assertTrue(AuditLog.objects.filter(action="category.delete", entity_id=str(empty.id)).exists())

    def test_admin_creates_and_updates_product(self):
        self.client.force_authenticate(user=self.admin)

        created = self.client.post(
            "/api/v1/products/",
            {"name": "Es Teh Manis", "description": "Teh dingin", "price": "8000.00", "category": self.drinks.id},
            format="json",
        )
        self.assertEqual(created.status_code, 201)
        product_id = created.json()["id"]

        updated = self.client.patch(f"/api/v1/products/{product_id}/", {"price": "9000.00"}, format="json")

        self.assertEqual(updated.status_code, 200)
        self.assertEqual(Product.objects.get(id=product_id).price, Decimal("9000.00"))
        self.assertTrue(AuditLog.objects.filter(action="product.update", entity_id=str(product_id)).exists())

    def test_product_price_must_be_positive(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(
            "/api/v1/products/",
            {"name": "Freebie", "price": "0", "category": self.drinks.id},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("price", response.json()["errors"])

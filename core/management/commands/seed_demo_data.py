from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from catalog.models import Category, Product
from core.models import UserSettings

DEMO_CATALOG = {
    "Foods": [
        ("Nasi Goreng Spesial", "Nasi goreng dengan telur, ayam, dan udang.", "35000"),
        ("Mie Ayam Bakso", "Mie ayam klasik dengan topping bakso sapi.", "25000"),
    ],
    "Beverages": [
        ("Es Teh Manis", "Minuman teh dingin yang menyegarkan.", "8000"),
        ("Jus Alpukat", "Jus buah alpukat segar dengan susu kental manis.", "18000"),
    ],
    "Dessert": [
        ("Pancake Coklat", "Pancake lembut dengan saus coklat dan es krim vanilla.", "28000"),
        ("Brownies Kukus", "Brownies coklat lembut dengan taburan kacang.", "22000"),
    ],
    "Snacks": [
        ("Kentang Goreng", "Kentang goreng renyah dengan saus sambal.", "15000"),
        ("Tahu Isi", "Tahu goreng isi sayuran dengan saus kacang.", "12000"),
    ],
    "Drinks": [
        ("Kopi Hitam", "Kopi hitam pekat tanpa gula.", "10000"),
        ("Cappuccino", "Kopi dengan susu berbusa dan taburan coklat.", "20000"),
    ],
}


class Command(BaseCommand):
    help = "Seed demo POS users, categories and products for local development."

    @transaction.atomic
    def handle(self, *args, **options):
        User = get_user_model()

        admin_user, admin_created = User.objects.get_or_create(
            username="admin",
            defaults={
                "email": "admin@example.com",
                "role": User.Role.ADMIN,
                "is_staff": True,
                "is_superuser": True,
                "is_active": True,
            },
        )
        if admin_created:
            admin_user.set_password("admin1234")
            admin_user.save(update_fields=["password"])

        cashier_user, cashier_created = User.objects.get_or_create(
            username="cashier",
            defaults={
                "email": "cashier@example.com",
                "role": User.Role.CASHIER,
                "is_active": True,
            },
        )
        if cashier_created:
            cashier_user.set_password("cashier1234")
            cashier_user.save(update_fields=["password"])

        for user in (admin_user, cashier_user):
            UserSettings.objects.get_or_create(user=user)

        product_count = 0
        for category_name, products in DEMO_CATALOG.items():
            category, _ = Category.objects.get_or_create(name=category_name)
            for name, description, price in products:
                Product.objects.get_or_create(
                    name=name,
                    category=category,
                    defaults={"description": description, "price": Decimal(price)},
                )
                product_count += 1

        self.stdout.write(self.style.SUCCESS("Demo data seeded successfully."))
        self.stdout.write("Credentials: admin/admin1234, cashier/cashier1234")
        self.stdout.write(f"Categories: {len(DEMO_CATALOG)} | Products: {product_count}")

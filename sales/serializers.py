from decimal import Decimal

from django.conf import settings
from rest_framework import serializers

from sales.models import Order, OrderItem
from sales.reports import Pagination, ReportFilters
from sales.services import validate_table_number


class CartItemSerializer(serializers.Serializer):
    product_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=255)


class OrderCreateSerializer(serializers.Serializer):
    customer_name = serializers.CharField(min_length=3, max_length=100)
    order_type = serializers.ChoiceField(choices=Order.OrderType.choices)
    table_number = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=16)
    amount_paid = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))
    payment_method = serializers.ChoiceField(choices=Order.PaymentMethod.choices, default=Order.PaymentMethod.CASH)
    items = CartItemSerializer(many=True, allow_empty=False)

    def validate(self, attrs):
        validate_table_number(attrs["order_type"], attrs.get("table_number"))
        return attrs


class OrderItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)
    category_name = serializers.CharField(source="product.category.name", read_only=True)
    line_total = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = ["id", "product", "product_name", "category_name", "quantity", "price", "notes", "line_total"]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    cashier_username = serializers.CharField(source="cashier.username", read_only=True)
    change = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_name",
            "order_type",
            "table_number",
            "subtotal",
            "tax_amount",
            "grand_total",
            "amount_paid",
            "change",
            "payment_method",
            "status",
            "cashier",
            "cashier_username",
            "created_at",
            "updated_at",
            "items",
        ]
        read_only_fields = fields


class SalesReportQuerySerializer(serializers.Serializer):
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)
    order_type = serializers.ChoiceField(choices=Order.OrderType.choices, required=False)
    category_id = serializers.IntegerField(min_value=1, required=False)
    cashier_id = serializers.IntegerField(min_value=1, required=False)
    page = serializers.IntegerField(min_value=1, default=1)
    limit = serializers.IntegerField(min_value=1, default=10)

    def validate_limit(self, value):
        if value > settings.REPORT_MAX_PAGE_SIZE:
            raise serializers.ValidationError(f"Ensure this value is less than or equal to {settings.REPORT_MAX_PAGE_SIZE}.")
        return value

    def to_filters(self):
        data = self.validated_data
        return ReportFilters(
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
            order_type=data.get("order_type"),
            category_id=data.get("category_id"),
        )

    def to_pagination(self):
        return Pagination(page=self.validated_data["page"], limit=self.validated_data["limit"])


class ReportOrderRowSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    order_number = serializers.CharField()
    order_date = serializers.DateTimeField()
    order_type = serializers.CharField()
    customer_name = serializers.CharField()
    category = serializers.CharField()
    grand_total = serializers.DecimalField(max_digits=12, decimal_places=2)


class SalesSummarySerializer(serializers.Serializer):
    total_order = serializers.IntegerField()
    total_omzet = serializers.DecimalField(max_digits=16, decimal_places=2)
    all_menu_sales = serializers.IntegerField()
    sales_by_category = serializers.DictField(child=serializers.DictField(child=serializers.IntegerField()))


class ReportOrdersPageSerializer(serializers.Serializer):
    data = ReportOrderRowSerializer(many=True)
    current_page = serializers.IntegerField()
    total_pages = serializers.IntegerField()
    total_items = serializers.IntegerField()


class SalesReportSerializer(serializers.Serializer):
    summary = SalesSummarySerializer()
    orders = ReportOrdersPageSerializer()

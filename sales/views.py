import logging

from django.db.models import Prefetch
from django.http import HttpResponse
from django.utils import timezone
from rest_framework import mixins, status, viewsets
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.audit import record_audit
from common.pagination import PageLimitPagination
from common.permissions import RoleCapabilityPermission, user_has_capability
from sales.exports import render_excel, render_pdf
from sales.models import Order, OrderItem
from sales.reports import generate_sales_report, get_full_report_data
from sales.serializers import (
    OrderCreateSerializer,
    OrderSerializer,
    SalesReportQuerySerializer,
    SalesReportSerializer,
)
from sales.services import create_order

logger = logging.getLogger("sales.reports")


class OrderViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, mixins.CreateModelMixin, viewsets.GenericViewSet):
    queryset = Order.objects.select_related("cashier").prefetch_related(
        Prefetch("items", queryset=OrderItem.objects.select_related("product__category").order_by("id"))
    )
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    pagination_class = PageLimitPagination
    permission_action_map = {
        "list": "orders.view",
        "retrieve": "orders.view",
        "create": "orders.create",
    }

    def get_queryset(self):
        queryset = super().get_queryset().order_by("-created_at", "-id")
        user = self.request.user
        if user_has_capability(user, "orders.view_all"):
            return queryset
        return queryset.filter(cashier=user)

    def create(self, request, *args, **kwargs):
        cart = OrderCreateSerializer(data=request.data)
        cart.is_valid(raise_exception=True)
        order = create_order(cart.validated_data, request.user)
        payload = OrderSerializer(order).data
        record_audit(request, "order.create", order, after=payload)
        return Response(payload, status=status.HTTP_201_CREATED)


class BaseReportView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "reports.view"}

    def _report_query(self, request):
        query = SalesReportQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        return query

    def _cashier_scope(self, request, query):
        """Admins may narrow to one cashier; everyone else only sees their own orders."""
        if user_has_capability(request.user, "reports.view_all"):
            return query.validated_data.get("cashier_id")
        return request.user.id

    def _attachment(self, content, *, content_type, extension):
        response = HttpResponse(content, content_type=content_type)
        filename = f"sales-report-{timezone.localdate():%Y%m%d}.{extension}"
        response["Content-Disposition"] = f'attachment; filename="{filename}"'
        return response


class SalesReportView(BaseReportView):
    def get(self, request):
        query = self._report_query(request)
        report = generate_sales_report(
            cashier_id=self._cashier_scope(request, query),
            filters=query.to_filters(),
            pagination=query.to_pagination(),
        )
        return Response(SalesReportSerializer(report).data)


class SalesReportExcelExportView(BaseReportView):
    def get(self, request):
        query = self._report_query(request)
        report = get_full_report_data(cashier_id=self._cashier_scope(request, query), filters=query.to_filters())
        content = render_excel(report["summary"], report["orders"])
        logger.info("sales_report_exported format=xlsx", extra={"report_rows": len(report["orders"])})
        return self._attachment(
            content,
            content_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            extension="xlsx",
        )


class SalesReportPdfExportView(BaseReportView):
    def get(self, request):
        query = self._report_query(request)
        report = get_full_report_data(cashier_id=self._cashier_scope(request, query), filters=query.to_filters())
        content = render_pdf(report["summary"], report["orders"])
        logger.info("sales_report_exported format=pdf", extra={"report_rows": len(report["orders"])})
        return self._attachment(content, content_type="application/pdf", extension="pdf")

from django.urls import path
from rest_framework.routers import DefaultRouter

from sales.views import (
    OrderViewSet,
    SalesReportExcelExportView,
    SalesReportPdfExportView,
    SalesReportView,
)

router = DefaultRouter()
router.register(r"orders", OrderViewSet, basename="order")

urlpatterns = router.urls + [
    path("reports/sales/", SalesReportView.as_view(), name="report-sales"),
    path("reports/sales/export/excel/", SalesReportExcelExportView.as_view(), name="report-sales-excel"),
    path("reports/sales/export/pdf/", SalesReportPdfExportView.as_view(), name="report-sales-pdf"),
]

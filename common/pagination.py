import math

from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class StandardResultsSetPagination(PageNumberPagination):
    """DRF `count`/`results` pages for admin listings such as the audit trail."""

    page_size_query_param = "page_size"
    max_page_size = 200


class PageLimitPagination(PageNumberPagination):
    """`?page=&limit=` pagination for the POS screens.

    Responses carry `data` plus `current_page`, `total_pages` and `total_items`.
    """

    page_size = 10
    page_size_query_param = "limit"
    max_page_size = 100

    def get_paginated_response(self, data):
        total_items = self.page.paginator.count
        return Response(
            {
                "data": data,
                "current_page": self.page.number,
                "total_pages": math.ceil(total_items / self.page.paginator.per_page) if total_items else 0,
                "total_items": total_items,
            }
        )

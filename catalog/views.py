from django.db.models import ProtectedError
from rest_framework import viewsets
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated

from catalog.models import Category, Product
from catalog.serializers import CategorySerializer, ProductSerializer
from common.audit import record_audit
from common.exceptions import ConflictError
from common.pagination import PageLimitPagination
from common.permissions import RoleCapabilityPermission

CATALOG_ACTION_MAP = {
    "list": "catalog.view",
    "retrieve": "catalog.view",
    "create": "catalog.manage",
    "update": "catalog.manage",
    "partial_update": "catalog.manage",
    "destroy": "catalog.manage",
}


class AuditedMutationMixin:
    audit_entity = None
    protected_message = "This record is still referenced."

    def perform_create(self, serializer):
        instance = serializer.save()
        record_audit(self.request, f"{self.audit_entity}.create", instance, after=self.get_serializer(instance).data)

    def perform_update(self, serializer):
        before = self.get_serializer(serializer.instance).data
        instance = serializer.save()
        record_audit(
            self.request,
            f"{self.audit_entity}.update",
            instance,
            before=before,
            after=self.get_serializer(instance).data,
        )

    def perform_destroy(self, instance):
        before = self.get_serializer(instance).data
        try:
            instance.delete()
        except ProtectedError as exc:
            raise ConflictError(self.protected_message) from exc
        # delete() clears the pk; the snapshot still carries it.
        record_audit(self.request, f"{self.audit_entity}.delete", entity_id=before["id"], before=before)


class CategoryViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    queryset = Category.objects.all()
    serializer_class = CategorySerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = CATALOG_ACTION_MAP
    pagination_class = None
    audit_entity = "category"
    protected_message = "Category still has products."


class ProductViewSet(AuditedMutationMixin, viewsets.ModelViewSet):
    queryset = Product.objects.select_related("category")
    serializer_class = ProductSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = CATALOG_ACTION_MAP
    pagination_class = PageLimitPagination
    audit_entity = "product"
    protected_message = "Product has already been ordered."

    def get_queryset(self):
        queryset = super().get_queryset()
        category_id = self.request.query_params.get("category_id")
        if category_id:
            if not category_id.isdigit():
                raise ValidationError({"category_id": ["Must be a positive integer."]})
            queryset = queryset.filter(category_id=category_id)
        return queryset

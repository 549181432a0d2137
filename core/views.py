import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.tokens import default_token_generator
from django.core.mail import send_mail
from django.db import connection
from django.db.migrations.executor import MigrationExecutor
from django.utils.encoding import force_bytes
from django.utils.http import urlsafe_base64_encode
from rest_framework import generics, status, viewsets
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework_simplejwt.views import TokenObtainPairView

from common.audit import record_audit
from common.permissions import RoleCapabilityPermission
from core.models import AuditLog
from core.serializers import (
    AccountSettingsSerializer,
    AuditLogQuerySerializer,
    AuditLogSerializer,
    CurrentUserSerializer,
    EmailOrUsernameTokenObtainPairSerializer,
    PasswordResetConfirmSerializer,
    PasswordResetRequestSerializer,
    UserRegistrationSerializer,
)

User = get_user_model()
logger = logging.getLogger(__name__)

PASSWORD_RESET_ACCEPTED = "If an account exists for this email, reset instructions were sent."


class RegisterView(generics.CreateAPIView):
    serializer_class = UserRegistrationSerializer
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"

    def perform_create(self, serializer):
        user = serializer.save()
        record_audit(self.request, "user.create", user, actor=user, after=CurrentUserSerializer(user).data)


class EmailOrUsernameTokenObtainPairView(TokenObtainPairView):
    serializer_class = EmailOrUsernameTokenObtainPairSerializer
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"


class MeView(generics.RetrieveAPIView):
    serializer_class = CurrentUserSerializer
    permission_classes = [IsAuthenticated]

    def get_object(self):
        return self.request.user


class AccountSettingsView(generics.RetrieveUpdateAPIView):
    """The caller's own profile and display preferences."""

    serializer_class = AccountSettingsSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "settings.self", "patch": "settings.self"}
    http_method_names = ["get", "patch", "head", "options"]

    def get_object(self):
        return self.request.user

    def perform_update(self, serializer):
        before = self.get_serializer(serializer.instance).data
        user = serializer.save()
        record_audit(self.request, "user.settings.update", user, before=before, after=self.get_serializer(user).data)


class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = AuditLogSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "admin.records.manage", "retrieve": "admin.records.manage"}

    def get_queryset(self):
        queryset = AuditLog.objects.select_related("actor").order_by("-created_at", "-id")
        if self.action != "list":
            return queryset
        query = AuditLogQuerySerializer(data=self.request.query_params)
        query.is_valid(raise_exception=True)
        return query.filter(queryset)


def _send_password_reset(user):
    token = default_token_generator.make_token(user)
    uid = urlsafe_base64_encode(force_bytes(user.pk))
    reset_url = f"{settings.PASSWORD_RESET_FRONTEND_URL.rstrip('/')}/{uid}/{token}"
    send_mail(
        subject="Reset your POS password",
        message=(
            f"Hello {user.username},\n\n"
            f"Open this link to choose a new password for the till:\n{reset_url}\n\n"
            "Ignore this message if you did not ask for a reset."
        ),
        from_email=settings.PASSWORD_RESET_FROM_EMAIL,
        recipient_list=[user.email],
    )


class PasswordResetRequestView(generics.GenericAPIView):
    serializer_class = PasswordResetRequestSerializer
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "password_reset"

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        # Same answer whether or not the address is known.
        user = User.objects.filter(email__iexact=serializer.validated_data["email"]).first()
        if user is not None:
            try:
                _send_password_reset(user)
            except Exception:
                logger.exception("password_reset_email_send_failed", extra={"user_id": str(user.id)})

        return Response({"detail": PASSWORD_RESET_ACCEPTED})


class PasswordResetConfirmView(generics.GenericAPIView):
    serializer_class = PasswordResetConfirmSerializer
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response({"detail": "Password reset successful."})


@api_view(["GET"])
@permission_classes([AllowAny])
def healthz(request):
    return Response({"status": "ok", "request_id": request.request_id})


@api_view(["GET"])
@permission_classes([AllowAny])
def readyz(request):
    """Ready once the database answers and every migration has been applied."""
    try:
        executor = MigrationExecutor(connection)
        pending = executor.migration_plan(executor.loader.graph.leaf_nodes())
    except Exception:
        logger.exception("readiness_check_failed")
        return Response(
            {"status": "error", "request_id": request.request_id, "detail": "Database unavailable."},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    if pending:
        return Response(
            {"status": "error", "request_id": request.request_id, "detail": f"Pending migrations: {len(pending)}."},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    return Response({"status": "ready", "request_id": request.request_id})

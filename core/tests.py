import json
import logging
from datetime import timedelta
from io import StringIO
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.contrib.auth.tokens import default_token_generator
from django.core import mail
from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.core.management import call_command
from django.http import Http404
from django.test import TestCase, override_settings
from django.utils import timezone
from django.utils.encoding import force_bytes
from django.utils.http import urlsafe_base64_encode
from rest_framework.test import APIClient

from common.exceptions import custom_exception_handler
from common.logging import JsonFormatter
from core.models import AuditLog, UserSettings


class RegistrationTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.user_model.objects.create_user(
            username="existing-user",
            email="existing@example.com",
            password="pass1234",
        )

    def test_registration_creates_cashier_with_default_settings(self):
        response = self.client.post(
            "/api/v1/auth/register/",
            {"username": "new-cashier", "email": "New@Example.com", "password": "secret1"},
            format="json",
            HTTP_X_REQUEST_ID="req-register",
        )

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["username"], "new-cashier")
        self.assertEqual(payload["email"], "new@example.com")
        self.assertEqual(payload["role"], "cashier")
        self.assertNotIn("password", payload)

        user = self.user_model.objects.get(username="new-cashier")
        self.assertTrue(user.check_password("secret1"))
        self.assertEqual(user.settings.language, UserSettings.Language.INDONESIA)
        self.assertTrue(AuditLog.objects.filter(action="user.create", request_id="req-register").exists())

    def test_registration_rejects_admin_role(self):
        response = self.client.post(
            "/api/v1/auth/register/",
            {"username": "sneaky", "email": "sneaky@example.com", "password": "secret1", "role": "admin"},
            format="json",
        )

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "permission_denied")
        self.assertFalse(self.user_model.objects.filter(username="sneaky").exists())

    def test_registration_rejects_case_insensitive_duplicate_email(self):
        response = self.client.post(
            "/api/v1/auth/register/",
            {"username": "new-user", "email": "EXISTING@example.com", "password": "pass12345"},
            format="json",
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "conflict")

    def test_registration_rejects_duplicate_username(self):
        response = self.client.post(
            "/api/v1/auth/register/",
            {"username": "existing-user", "email": "other@example.com", "password": "pass12345"},
            format="json",
        )

        self.assertEqual(response.status_code, 409)

    def test_registration_validates_lengths(self):
        response = self.client.post(
            "/api/v1/auth/register/",
            {"username": "ab", "email": "short@example.com", "password": "123"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "validation_error")
        self.assertIn("username", payload["errors"])
        self.assertIn("password", payload["errors"])


class LoginTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = get_user_model().objects.create_user(
            username="login-user",
            email="login@example.com",
            password="pass1234",
        )

    def test_login_with_username_returns_tokens_and_user(self):
        response = self.client.post(
            "/api/v1/auth/login/",
            {"username": "login-user", "password": "pass1234"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertIn("access", payload)
        self.assertIn("refresh", payload)
        self.assertEqual(payload["user"]["role"], "cashier")

    def test_login_with_email(self):
        response = self.client.post(
            "/api/v1/auth/login/",
            {"username": "LOGIN@example.com", "password": "pass1234"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)

    def test_login_rejects_wrong_password(self):
        response = self.client.post(
            "/api/v1/auth/login/",
            {"username": "login-user", "password": "wrong"},
            format="json",
        )

        self.assertEqual(response.status_code, 401)

    def test_login_rejects_inactive_status(self):
        self.user.status = self.user.Status.INACTIVE
        self.user.save()

        response = self.client.post(
            "/api/v1/auth/login/",
            {"username": "login-user", "password": "pass1234"},
            format="json",
        )

        self.assertEqual(response.status_code, 401)

    def test_me_requires_authentication(self):
        response = self.client.get("/api/v1/auth/me/")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "not_authenticated")

    def test_me_returns_current_user(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.get("/api/v1/auth/me/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["username"], "login-user")


class AccountSettingsTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.user = self.user_model.objects.create_user(
            username="settings-user",
            email="settings@example.com",
            password="pass1234",
        )
        self.other = self.user_model.objects.create_user(
            username="taken-name",
            email="taken@example.com",
            password="pass1234",
        )
        self.client.force_authenticate(user=self.user)

    def test_get_creates_default_settings_when_missing(self):
        response = self.client.get("/api/v1/settings/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json()["settings"],
            {"language": "Indonesia", "preference_mode": "light", "font_size": 16, "zoom_display": 100},
        )

    def test_patch_updates_preferences_and_password(self):
        response = self.client.patch(
            "/api/v1/settings/",
            {"password": "brand-new-pass", "settings": {"preference_mode": "dark", "font_size": 20}},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["settings"]["preference_mode"], "dark")
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password("brand-new-pass"))
        self.assertEqual(self.user.settings.font_size, 20)
        self.assertTrue(AuditLog.objects.filter(action="user.settings.update", entity_id=str(self.user.id)).exists())

    def test_patch_rejects_out_of_range_values(self):
        response = self.client.patch(
            "/api/v1/settings/",
            {"settings": {"font_size": 30, "zoom_display": 40}},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        errors = response.json()["errors"]["settings"]
        self.assertIn("font_size", errors)
        self.assertIn("zoom_display", errors)

    def test_patch_rejects_taken_username(self):
        response = self.client.patch("/api/v1/settings/", {"username": "taken-name"}, format="json")

        self.assertEqual(response.status_code, 409)

    def test_patch_keeps_own_email(self):
        response = self.client.patch("/api/v1/settings/", {"email": "settings@example.com"}, format="json")

        self.assertEqual(response.status_code, 200)

    def test_role_is_read_only(self):
        response = self.client.patch("/api/v1/settings/", {"role": "admin"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.user.refresh_from_db()
        self.assertEqual(self.user.role, "cashier")


class AuditLogTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(username="audit-admin", password="pass1234", role="admin")
        self.cashier = self.user_model.objects.create_user(username="audit-cashier", password="pass1234")

    def test_admin_can_filter_audit_logs(self):
        AuditLog.objects.create(action="category.create", entity="category", actor=self.admin)
        AuditLog.objects.create(action="order.create", entity="order", actor=self.cashier)
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/admin/audit-logs/", {"entity": "order"})

        self.assertEqual(response.status_code, 200)
        results = response.json()["results"]
        self.assertEqual([item["action"] for item in results], ["order.create"])
        self.assertEqual(results[0]["actor_username"], "audit-cashier")

    def test_cashier_cannot_read_audit_logs_and_denial_is_logged(self):
        self.client.force_authenticate(user=self.cashier)

        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.get("/api/v1/admin/audit-logs/")

        self.assertEqual(response.status_code, 403)
        self.assertTrue(any("permission_denied" in message for message in cm.output))

    def test_audit_logs_filter_by_local_day(self):
        old = AuditLog.objects.create(action="order.create", entity="order", actor=self.cashier)
        AuditLog.objects.filter(pk=old.pk).update(created_at=timezone.now() - timedelta(days=3))
        AuditLog.objects.create(action="order.create", entity="order", actor=self.cashier)
        self.client.force_authenticate(user=self.admin)
        today = timezone.localdate().isoformat()

        response = self.client.get("/api/v1/admin/audit-logs/", {"start_date": today, "end_date": today})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["count"], 1)

    def test_audit_log_filters_are_validated(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/admin/audit-logs/", {"start_date": "yesterday", "actor_id": "x"})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(set(response.json()["errors"]), {"start_date", "actor_id"})

    def test_audit_logs_are_read_only(self):
        self.client.force_authenticate(user=self.admin)
        log = AuditLog.objects.create(action="test.action", entity="test", actor=self.admin)

        patch_res = self.client.patch(f"/api/v1/admin/audit-logs/{log.id}/", {"action": "changed"}, format="json")
        delete_res = self.client.delete(f"/api/v1/admin/audit-logs/{log.id}/")

        self.assertEqual(patch_res.status_code, 405)
        self.assertEqual(delete_res.status_code, 405)


class PasswordResetTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.user = self.user_model.objects.create_user(
            username="reset-user",
            email="reset@example.com",
            password="old-pass-123",
        )

    def test_password_reset_request_returns_generic_message_for_known_and_unknown_email(self):
        known_response = self.client.post(
            "/api/v1/auth/password-reset/request/",
            {"email": self.user.email},
            format="json",
        )
        unknown_response = self.client.post(
            "/api/v1/auth/password-reset/request/",
            {"email": "missing@example.com"},
            format="json",
        )

        self.assertEqual(known_response.status_code, 200)
        self.assertEqual(unknown_response.status_code, 200)
        self.assertEqual(known_response.json()["detail"], unknown_response.json()["detail"])

    @override_settings(
        PASSWORD_RESET_FRONTEND_URL="https://app.example.com/reset-password",
        PASSWORD_RESET_FROM_EMAIL="support@example.com",
    )
    def test_password_reset_request_sends_clickable_link(self):
        response = self.client.post(
            "/api/v1/auth/password-reset/request/",
            {"email": self.user.email},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.from_email, "support@example.com")

        uid = urlsafe_base64_encode(force_bytes(self.user.pk))
        self.assertIn(f"https://app.example.com/reset-password/{uid}/", message.body)

    def test_password_reset_confirm_updates_password_with_valid_token(self):
        token = default_token_generator.make_token(self.user)
        uid = urlsafe_base64_encode(force_bytes(self.user.pk))
        response = self.client.post(
            "/api/v1/auth/password-reset/confirm/",
            {"uid": uid, "token": token, "new_password": "new-safe-pass-123"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password("new-safe-pass-123"))

    def test_password_reset_request_logs_mail_send_failures(self):
        with patch("core.views.send_mail", side_effect=RuntimeError("mail down")):
            with self.assertLogs("core.views", level="ERROR") as logs:
                response = self.client.post(
                    "/api/v1/auth/password-reset/request/",
                    {"email": self.user.email},
                    format="json",
                )

        self.assertEqual(response.status_code, 200)
        self.assertTrue(any("password_reset_email_send_failed" in entry for entry in logs.output))

    def test_password_reset_confirm_rejects_invalid_token(self):
        uid = urlsafe_base64_encode(force_bytes(self.user.pk))
        response = self.client.post(
            "/api/v1/auth/password-reset/confirm/",
            {"uid": uid, "token": "invalid-token", "new_password": "new-safe-pass-123"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password("old-pass-123"))

    def test_password_reset_confirm_requires_uid(self):
        token = default_token_generator.make_token(self.user)
        response = self.client.post(
            "/api/v1/auth/password-reset/confirm/",
            {"token": token, "new_password": "new-safe-pass-123"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)


class HealthTests(TestCase):
    def test_healthz_and_readyz(self):
        client = APIClient()

        self.assertEqual(client.get("/api/v1/healthz/").json()["status"], "ok")
        self.assertEqual(client.get("/api/v1/readyz/").json()["status"], "ready")

    def test_healthz_echoes_request_id(self):
        response = APIClient().get("/api/v1/healthz/", HTTP_X_REQUEST_ID="till-7")

        self.assertEqual(response.json()["request_id"], "till-7")
        self.assertEqual(response["X-Request-ID"], "till-7")

    def test_readyz_reports_pending_migrations(self):
        with patch("core.views.MigrationExecutor") as executor:
            executor.return_value.migration_plan.return_value = [("sales.0002", False)]
            response = APIClient().get("/api/v1/readyz/")

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["detail"], "Pending migrations: 1.")

    def test_health_checks_are_not_access_logged(self):
        with self.assertNoLogs("api.request", level="INFO"):
            APIClient().get("/api/v1/healthz/")


class RequestLoggingTests(TestCase):
    def test_client_errors_are_access_logged_as_warnings(self):
        with self.assertLogs("api.request", level="WARNING") as logs:
            APIClient().get("/api/v1/auth/me/", HTTP_X_REQUEST_ID="req-401")

        record = logs.records[0]
        self.assertEqual(record.status_code, 401)
        self.assertEqual(record.request_id, "req-401")
        self.assertIsNone(record.user_id)

    def test_json_formatter_keeps_order_context(self):
        record = logging.LogRecord("sales.orders", logging.INFO, __file__, 1, "order_created", None, None)
        record.order_number = "ORD-20251013-0001"
        record.user_id = "7"

        payload = json.loads(JsonFormatter().format(record))

        self.assertEqual(payload["message"], "order_created")
        self.assertEqual(payload["order_number"], "ORD-20251013-0001")
        self.assertEqual(payload["user_id"], "7")
        self.assertNotIn("report_rows", payload)

class SeedDemoDataCommandTests(TestCase):
    def test_seed_is_idempotent(self):
        from catalog.models import Category, Product

        call_command("seed_demo_data", stdout=StringIO())
        call_command("seed_demo_data", stdout=StringIO())

        user_model = get_user_model()
        self.assertEqual(user_model.objects.get(username="admin").role, "admin")
        self.assertTrue(user_model.objects.get(username="cashier").check_password("cashier1234"))
        self.assertEqual(Category.objects.count(), 5)
        self.assertEqual(Product.objects.count(), 10)
        self.assertEqual(Product.objects.get(name="Nasi Goreng Spesial").price, 35000)


class ErrorEnvelopeTests(TestCase):
    def test_django_lookup_and_permission_errors_keep_their_codes(self):
        not_found = custom_exception_handler(Http404("No Order matches the given query."), {})
        forbidden = custom_exception_handler(DjangoPermissionDenied(), {})

        self.assertEqual(not_found.status_code, 404)
        self.assertEqual(
            not_found.data,
            {"code": "not_found", "message": "No Order matches the given query.", "errors": None, "status": 404},
        )
        self.assertEqual(forbidden.status_code, 403)
        self.assertEqual(forbidden.data["code"], "permission_denied")

from django.contrib.auth import get_user_model, password_validation
from django.contrib.auth.tokens import default_token_generator
from django.contrib.auth.validators import UnicodeUsernameValidator
from django.db import transaction
from django.utils.encoding import force_str
from django.utils.http import urlsafe_base64_decode
from rest_framework import serializers
from rest_framework.exceptions import AuthenticationFailed, PermissionDenied
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from common.exceptions import ConflictError
from common.utils import local_day_bounds
from core.models import AuditLog, UserSettings

User = get_user_model()

USERNAME_FIELD_KWARGS = {
    "min_length": 3,
    "max_length": 50,
    "validators": [UnicodeUsernameValidator()],
}


def _ensure_identity_available(*, username=None, email=None, exclude_pk=None):
    conflicts = User.objects.none()
    if username:
        conflicts = conflicts | User.objects.filter(username=username)
    if email:
        conflicts = conflicts | User.objects.filter(email__iexact=email)
    if exclude_pk is not None:
        conflicts = conflicts.exclude(pk=exclude_pk)
    if conflicts.exists():
        raise ConflictError("Username or email already exists.")


class UserRegistrationSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, min_length=6)
    role = serializers.ChoiceField(choices=User.Role.choices, required=False)

    class Meta:
        model = User
        fields = ["id", "username", "email", "password", "role"]
        read_only_fields = ["id"]
        extra_kwargs = {
            "username": USERNAME_FIELD_KWARGS,
            "email": {"required": True, "allow_blank": False},
        }

    def validate_role(self, value):
        if value == User.Role.ADMIN:
            raise PermissionDenied("Cannot register as admin.")
        return value

    def validate_email(self, value):
        return value.strip().lower()

    def validate(self, attrs):
        _ensure_identity_available(username=attrs["username"], email=attrs["email"])
        return attrs

    @transaction.atomic
    def create(self, validated_data):
        user = User.objects.create_user(
            username=validated_data["username"],
            email=validated_data["email"],
            password=validated_data["password"],
            role=User.Role.CASHIER,
        )
        UserSettings.objects.create(user=user, language=UserSettings.Language.INDONESIA)
        return user


class EmailOrUsernameTokenObtainPairSerializer(TokenObtainPairSerializer):
    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token["username"] = user.username
        token["role"] = getattr(user, "role", None)
        token["is_superuser"] = user.is_superuser
        return token

    def validate(self, attrs):
        username = attrs.get("username", "")
        if username and "@" in username:
            try:
                user = User.objects.get(email__iexact=username)
                attrs["username"] = user.get_username()
            except User.DoesNotExist:
                pass
        data = super().validate(attrs)
        if self.user.status == User.Status.INACTIVE:
            raise AuthenticationFailed("This account is inactive.", code="inactive_account")
        data["user"] = CurrentUserSerializer(self.user).data
        return data


class CurrentUserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ["id", "username", "email", "role", "status"]
        read_only_fields = fields


class UserSettingsSerializer(serializers.ModelSerializer):
    font_size = serializers.IntegerField(min_value=10, max_value=24, required=False)
    zoom_display = serializers.IntegerField(min_value=50, max_value=150, required=False)

    class Meta:
        model = UserSettings
        fields = ["language", "preference_mode", "font_size", "zoom_display"]


class AccountSettingsSerializer(serializers.ModelSerializer):
    """The signed-in user's profile together with their display preferences."""

    password = serializers.CharField(write_only=True, required=False, min_length=7)
    settings = UserSettingsSerializer(required=False)

    class Meta:
        model = User
        fields = ["id", "username", "email", "role", "status", "password", "settings"]
        read_only_fields = ["id", "role", "status"]
        extra_kwargs = {"username": USERNAME_FIELD_KWARGS}

    def validate_email(self, value):
        return value.strip().lower()

    def validate(self, attrs):
        instance = self.instance
        username = attrs.get("username")
        email = attrs.get("email")
        _ensure_identity_available(
            username=username if username and username != instance.username else None,
            email=email if email and email != instance.email else None,
            exclude_pk=instance.pk,
        )
        return attrs

    @transaction.atomic
    def update(self, instance, validated_data):
        settings_data = validated_data.pop("settings", None) or {}
        password = validated_data.pop("password", None)

        for field, value in validated_data.items():
            setattr(instance, field, value)
        if password:
            instance.set_password(password)
        instance.save()

        UserSettings.objects.get_or_create(user=instance)
        user_settings = instance.settings
        if settings_data:
            for field, value in settings_data.items():
                setattr(user_settings, field, value)
            user_settings.save()
        return instance

    def to_representation(self, instance):
        # Accounts created outside registration may not have settings yet.
        UserSettings.objects.get_or_create(user=instance)
        return super().to_representation(instance)


class PasswordResetRequestSerializer(serializers.Serializer):
    email = serializers.EmailField()


class PasswordResetConfirmSerializer(serializers.Serializer):
    uid = serializers.CharField(required=True)
    token = serializers.CharField()
    new_password = serializers.CharField(write_only=True, min_length=8)

    default_error_messages = {
        "invalid_reset_credentials": "Invalid password reset credentials.",
    }

    def _get_user(self, attrs):
        uid = attrs.get("uid")

        if uid:
            try:
                user_id = force_str(urlsafe_base64_decode(uid))
                return User.objects.filter(pk=user_id).first()
            except (TypeError, ValueError, OverflowError):
                return None

        return None

    def validate(self, attrs):
        token = attrs.get("token", "")
        user = self._get_user(attrs)

        if not user:
            self.fail("invalid_reset_credentials")

        if not default_token_generator.check_token(user, token):
            self.fail("invalid_reset_credentials")

        password_validation.validate_password(attrs["new_password"], user=user)
        attrs["user"] = user
        return attrs

    def save(self):
        user = self.validated_data["user"]
        user.set_password(self.validated_data["new_password"])
        user.save(update_fields=["password"])
        return user


class AuditLogSerializer(serializers.ModelSerializer):
    actor_username = serializers.CharField(source="actor.username", read_only=True)

    class Meta:
        model = AuditLog
        fields = [
            "id",
            "actor",
            "actor_username",
            "action",
            "entity",
            "entity_id",
            "before_snapshot",
            "after_snapshot",
            "request_id",
            "created_at",
        ]
        read_only_fields = fields


class AuditLogQuerySerializer(serializers.Serializer):
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)
    actor_id = serializers.IntegerField(min_value=1, required=False)
    action = serializers.CharField(required=False, max_length=64)
    entity = serializers.CharField(required=False, max_length=64)

    def validate(self, attrs):
        start_date, end_date = attrs.get("start_date"), attrs.get("end_date")
        if start_date and end_date and start_date > end_date:
            raise serializers.ValidationError({"end_date": "end_date must not be before start_date."})
        return attrs

    def filter(self, queryset):
        data = self.validated_data
        if "start_date" in data:
            queryset = queryset.filter(created_at__gte=local_day_bounds(data["start_date"])[0])
        if "end_date" in data:
            queryset = queryset.filter(created_at__lt=local_day_bounds(data["end_date"])[1])
        for field in ("actor_id", "action", "entity"):
            if field in data:
                queryset = queryset.filter(**{field: data[field]})
        return queryset

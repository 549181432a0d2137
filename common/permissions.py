import logging

from rest_framework.permissions import BasePermission

from core.models import User

logger = logging.getLogger("security.authorization")

CASHIER_CAPABILITIES = frozenset(
    {
        "catalog.view",
        "orders.create",
        "orders.view",
        "reports.view",
        "settings.self",
    }
)

ROLE_CAPABILITIES = {
    User.Role.CASHIER: CASHIER_CAPABILITIES,
    User.Role.ADMIN: CASHIER_CAPABILITIES
    | {
        "catalog.manage",
        "orders.view_all",
        "reports.view_all",
        "admin.records.manage",
    },
}


def get_user_role(user):
    if user is None or not user.is_authenticated:
        return None
    if user.is_superuser:
        return User.Role.ADMIN
    return user.role


def user_has_capability(user, capability):
    return capability in ROLE_CAPABILITIES.get(get_user_role(user), ())


class RoleCapabilityPermission(BasePermission):
    """Look up the capability a view needs for the current action in `permission_action_map`.

    Viewsets are keyed by action name, plain API views by lowercase HTTP method.
    Actions missing from the map are not restricted beyond authentication.
    """

    message = "You do not have permission to perform this action."

    def has_permission(self, request, view):
        action = getattr(view, "action", None) or request.method.lower()
        capability = getattr(view, "permission_action_map", {}).get(action)
        if capability is None or user_has_capability(request.user, capability):
            return True

        logger.warning(
            "permission_denied capability=%s role=%s",
            capability,
            get_user_role(request.user),
            extra={
                "user_id": str(request.user.pk) if request.user.is_authenticated else None,
                "path": request.path,
                "method": request.method,
            },
        )
        return False

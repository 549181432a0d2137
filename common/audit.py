import json

from django.core.serializers.json import DjangoJSONEncoder

from core.models import AuditLog


def _snapshot(data):
    # Serializer output may carry Decimal and datetime values.
    if data is None:
        return None
    return json.loads(json.dumps(data, cls=DjangoJSONEncoder))


def record_audit(request, action, instance=None, *, entity_id=None, before=None, after=None, actor=None):
    """Store an audit row for `action`, e.g. ``order.create`` or ``user.settings.update``.

    The entity is the first dotted segment of the action. The acting user defaults
    to the authenticated user of `request`, and the row carries the request id set
    by the request middleware.
    """
    if entity_id is None and instance is not None:
        entity_id = instance.pk
    if actor is None and request.user.is_authenticated:
        actor = request.user

    return AuditLog.objects.create(
        actor=actor,
        action=action,
        entity=action.split(".", 1)[0],
        entity_id=None if entity_id is None else str(entity_id),
        before_snapshot=_snapshot(before),
        after_snapshot=_snapshot(after),
        request_id=getattr(request, "request_id", None) or request.headers.get("X-Request-ID"),
    )

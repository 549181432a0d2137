from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from common.exceptions import OrderNumberIntegrityError
from common.utils import local_day_bounds
from sales.models import Order, OrderSequence

ORDER_NUMBER_PREFIX = "ORD"


def find_latest_order_on_day(day):
    start, end = local_day_bounds(day)
    return (
        Order.objects.filter(created_at__gte=start, created_at__lt=end)
        .order_by("-created_at", "-id")
        .only("id", "order_number", "created_at")
        .first()
    )


def parse_order_sequence(order_number):
    parts = str(order_number).split("-")
    if len(parts) != 3 or not parts[2].isdigit():
        raise OrderNumberIntegrityError(f"Cannot read the sequence of order number {order_number!r}.")
    return int(parts[2])


def format_order_number(day, sequence):
    return f"{ORDER_NUMBER_PREFIX}-{day:%Y%m%d}-{sequence:04d}"


def _last_used_sequence(day):
    latest = find_latest_order_on_day(day)
    if latest is None:
        return 0
    return parse_order_sequence(latest.order_number)


def _locked_sequence(day):
    sequence = OrderSequence.objects.select_for_update().filter(day=day).first()
    if sequence is not None:
        return sequence

    seed = _last_used_sequence(day)
    try:
        with transaction.atomic():
            OrderSequence.objects.create(day=day, last_value=seed)
    except IntegrityError:
        # A concurrent transaction created the row first; lock theirs below.
        pass
    return OrderSequence.objects.select_for_update().get(day=day)


def next_order_number(today=None, *, resync=False):
    """Allocate the next `ORD-YYYYMMDD-NNNN` number for `today`.

    The day's counter row stays locked until the surrounding transaction ends,
    so concurrent callers on the same day are serialized. With `resync` the
    counter is first moved past the latest order already stored for the day.
    """
    day = today or timezone.localdate()
    with transaction.atomic():
        sequence = _locked_sequence(day)
        if resync:
            last_used = _last_used_sequence(day)
            if last_used > sequence.last_value:
                OrderSequence.objects.filter(day=day).update(last_value=last_used)
        OrderSequence.objects.filter(day=day).update(last_value=F("last_value") + 1)
        sequence.refresh_from_db(fields=["last_value"])
    return format_order_number(day, sequence.last_value)

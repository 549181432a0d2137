from contextlib import contextmanager
from datetime import datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP

from django.db import transaction
from django.utils import timezone

MONEY_QUANT = Decimal("0.01")


def to_money(value):
    return Decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def local_day_bounds(day):
    """Return the `[start, end)` datetimes of `day` in the current time zone."""
    tz = timezone.get_current_timezone()
    start = datetime.combine(day, time.min).replace(tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min).replace(tzinfo=tz)
    return start, end


@contextmanager
def consistent_read(using=None):
    """Run a block of reads against one snapshot.

    On PostgreSQL the transaction is switched to REPEATABLE READ READ ONLY when
    this block opens it. Nested inside an existing transaction, or on other
    backends, the block only gets the isolation already in effect.
    """
    connection = transaction.get_connection(using)
    opens_transaction = not connection.in_atomic_block
    with transaction.atomic(using=using):
        if opens_transaction and connection.vendor == "postgresql":
            with connection.cursor() as cursor:
                cursor.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ READ ONLY")
        yield

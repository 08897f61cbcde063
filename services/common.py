from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from models import db
from services.errors import ConcurrentModificationError, NotFoundError

CENT = Decimal("0.01")


def utcnow():
    return datetime.utcnow()


def money(value) -> Decimal:
    amount = Decimal(str(value or 0))
    if not amount.is_finite():
        raise ValueError(f"not a finite amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def get_or_404(model, pk, label=None):
    row = db.session.get(model, pk)
    if row is None:
        raise NotFoundError(f"{label or model.__name__} not found", entity_id=pk)
    return row


@contextmanager
def atomic(entity: str, entity_id, integrity_error=None):
    """
    Commit everything done inside the block as one write, or nothing.

    Versioned rows (bookings, driver documents, vehicles) only update if
    nobody else wrote them since they were read; otherwise the caller gets
    ConcurrentModificationError and must re-read.
    """
    try:
        yield
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        logger.warning("Lost optimistic race on {} #{}", entity, entity_id)
        raise ConcurrentModificationError(entity=entity, entity_id=entity_id) from None
    except IntegrityError:
        db.session.rollback()
        if integrity_error is not None:
            raise integrity_error from None
        raise
    except Exception:
        db.session.rollback()
        raise

"""Driver license / insurance verification ledger.

A document is stored unverified when submitted, flipped to verified only by
a verifier while it is still unexpired, and flipped back by a rejection.
Submitted values are never erased so the driver can correct and resubmit.
"""
from datetime import date, datetime

from sqlalchemy import update
from sqlalchemy.orm.exc import StaleDataError

from models import db
from models.driver import Driver, DriverDocument, DocumentType, DOCUMENT_FIELDS
from services.common import atomic, get_or_404, utcnow
from services.errors import InvalidStateError, StaleDocumentError, ValidationError
from utils.audit import log_event


def parse_doc_type(doc_type) -> DocumentType:
    try:
        return DocumentType(getattr(doc_type, "value", doc_type))
    except ValueError:
        raise ValidationError(
            "Unknown document type",
            fields={"doc_type": "must be one of: " + ", ".join(t.value for t in DocumentType)},
        ) from None


def _parse_date(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        # Expect ISO format like "2027-05-31"
        return date.fromisoformat(value.strip()[:10])
    raise ValueError(value)


def _validate_fields(doc_type: DocumentType, fields: dict, today: date) -> dict:
    """Returns {column: value} or raises ValidationError naming every bad field."""
    errors = {}
    values = {}
    for name, column in DOCUMENT_FIELDS[doc_type].items():
        raw = fields.get(name)
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            errors[name] = "required"
            continue
        if column == "expiry_date":
            try:
                expiry = _parse_date(raw)
            except ValueError:
                errors[name] = "invalid date, use YYYY-MM-DD"
                continue
            if expiry <= today:
                errors[name] = "must be in the future"
                continue
            values[column] = expiry
        else:
            values[column] = str(raw).strip()

    if errors:
        raise ValidationError(f"Invalid {doc_type.value} document", fields=errors)
    return values


def _stored_fields(doc: DriverDocument) -> dict:
    return {name: getattr(doc, column) for name, column in DOCUMENT_FIELDS[doc.doc_type].items()}


def _get_document(driver_id: int, doc_type: DocumentType) -> DriverDocument:
    get_or_404(Driver, driver_id, "Driver")
    doc = DriverDocument.query.filter_by(driver_id=driver_id, doc_type=doc_type).first()
    if doc is None:
        raise InvalidStateError(f"No {doc_type.value} document has been submitted", doc_type=doc_type.value)
    return doc


def submit_document(driver_id: int, doc_type, fields: dict, actor_id=None, now=None) -> DriverDocument:
    now = now or utcnow()
    fields = fields or {}
    doc_type = parse_doc_type(doc_type)
    get_or_404(Driver, driver_id, "Driver")
    values = _validate_fields(doc_type, fields, now.date())

    file_ref = (fields.get("file_ref") or "").strip() or None

    doc = DriverDocument.query.filter_by(driver_id=driver_id, doc_type=doc_type).first()
    with atomic("driver_document", driver_id):
        if doc is None:
            doc = DriverDocument(driver_id=driver_id, doc_type=doc_type)
            db.session.add(doc)
        for column, value in values.items():
            setattr(doc, column, value)
        if file_ref:
            doc.file_ref = file_ref
        # any resubmission goes back to the verifier
        doc.verified = False
        doc.verified_by = None
        doc.verified_at = None
        doc.rejected_reason = None
        doc.submitted_at = now

    log_event("DOCUMENT_SUBMIT", user_id=actor_id, entity="driver_document", entity_id=doc.id,
              metadata={"driver_id": driver_id, "doc_type": doc_type.value})
    return doc


def verify(driver_id: int, doc_type, verifier_id: int, now=None) -> DriverDocument:
    now = now or utcnow()
    doc_type = parse_doc_type(doc_type)
    doc = _get_document(driver_id, doc_type)

    stored = _stored_fields(doc)
    missing = {name: "required" for name, value in stored.items() if value in (None, "")}
    if missing:
        raise ValidationError(f"Invalid {doc_type.value} document", fields=missing)

    # time has passed since submission, so expiry is checked again
    if doc.expiry_date <= now.date():
        raise StaleDocumentError(
            f"{doc_type.value.capitalize()} expired on {doc.expiry_date.isoformat()}",
            doc_type=doc_type.value,
        )

    with atomic("driver_document", doc.id):
        doc.verified = True
        doc.verified_by = verifier_id
        doc.verified_at = now
        doc.rejected_reason = None

    log_event("DOCUMENT_VERIFY", user_id=verifier_id, entity="driver_document", entity_id=doc.id,
              metadata={"driver_id": driver_id, "doc_type": doc_type.value})
    return doc


def reject(driver_id: int, doc_type, verifier_id=None, reason=None) -> DriverDocument:
    doc_type = parse_doc_type(doc_type)
    doc = _get_document(driver_id, doc_type)

    with atomic("driver_document", doc.id):
        doc.verified = False
        doc.verified_by = None
        doc.verified_at = None
        doc.rejected_reason = (reason or "").strip()[:255] or None

    log_event("DOCUMENT_REJECT", user_id=verifier_id, entity="driver_document", entity_id=doc.id,
              metadata={"driver_id": driver_id, "doc_type": doc_type.value, "reason": doc.rejected_reason})
    return doc


def documents_for(driver_id: int, lock=False) -> dict:
    q = DriverDocument.query.filter_by(driver_id=driver_id)
    if lock:
        # held until the caller commits, so a concurrent verify/reject waits
        q = q.with_for_update()
    return {d.doc_type: d for d in q.all()}


def assert_unchanged(docs):
    """
    Re-check, inside the caller's write, that these documents still hold the
    version and verified flag they were read with. SQLite ignores FOR UPDATE,
    so this is a conditional UPDATE; a miss fails the whole write.
    """
    for doc in docs:
        result = db.session.execute(
            update(DriverDocument)
            .where(
                DriverDocument.id == doc.id,
                DriverDocument.version == doc.version,
                DriverDocument.verified == doc.verified,
            )
            .values(version=DriverDocument.version)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleDataError(f"driver_document #{doc.id} changed since it was read")


def is_fully_verified(driver_id: int, lock=False) -> bool:
    if driver_id is None:
        return False
    docs = documents_for(driver_id, lock=lock)
    return all(docs.get(t) is not None and docs[t].verified for t in DocumentType)


def document_status(driver_id: int) -> dict:
    get_or_404(Driver, driver_id, "Driver")
    docs = documents_for(driver_id)
    out = {}
    for t in DocumentType:
        d = docs.get(t)
        if d is None:
            out[t.value] = {"submitted": False, "verified": False}
            continue
        out[t.value] = {
            "submitted": True,
            "verified": d.verified,
            **{name: (v.isoformat() if isinstance(v, date) else v) for name, v in _stored_fields(d).items()},
            "file_ref": d.file_ref,
            "verified_by": d.verified_by,
            "verified_at": d.verified_at.isoformat() if d.verified_at else None,
            "rejected_reason": d.rejected_reason,
            "submitted_at": d.submitted_at.isoformat() if d.submitted_at else None,
        }
    out["fully_verified"] = all(out[t.value]["verified"] for t in DocumentType)
    return out

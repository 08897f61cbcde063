import enum
from datetime import datetime
from models.db import db


class DocumentType(str, enum.Enum):
    LICENSE = "license"
    INSURANCE = "insurance"


# submitted field name -> column it is stored in
DOCUMENT_FIELDS = {
    DocumentType.LICENSE: {
        "number": "document_number",
        "issuing_authority": "issuer",
        "expiry_date": "expiry_date",
    },
    DocumentType.INSURANCE: {
        "policy_number": "document_number",
        "provider": "issuer",
        "expiry_date": "expiry_date",
    },
}


class Driver(db.Model):
    __tablename__ = "drivers"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    full_name = db.Column(db.String(120), nullable=False)
    is_professional = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    documents = db.relationship("DriverDocument", back_populates="driver", lazy="selectin")

    def document(self, doc_type):
        for d in self.documents:
            if d.doc_type == doc_type:
                return d
        return None


class DriverDocument(db.Model):
    __tablename__ = "driver_documents"

    id = db.Column(db.Integer, primary_key=True)
    driver_id = db.Column(db.Integer, db.ForeignKey("drivers.id"), nullable=False, index=True)
    doc_type = db.Column(
        db.Enum(DocumentType, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )

    # license number / insurance policy number
    document_number = db.Column(db.String(80), nullable=True)
    # issuing authority / insurance provider
    issuer = db.Column(db.String(120), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)
    file_ref = db.Column(db.String(500), nullable=True)

    verified = db.Column(db.Boolean, default=False, nullable=False)
    verified_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    verified_at = db.Column(db.DateTime, nullable=True)
    rejected_reason = db.Column(db.String(255), nullable=True)

    submitted_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    version = db.Column(db.Integer, nullable=False, default=1)

    driver = db.relationship("Driver", back_populates="documents")

    __table_args__ = (
        # one license and one insurance record per driver
        db.UniqueConstraint("driver_id", "doc_type", name="uq_driver_document_type"),
    )
    __mapper_args__ = {"version_id_col": version}

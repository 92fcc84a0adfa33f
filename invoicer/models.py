from sqlalchemy import Column, Integer, String, Float, Date, DateTime, Text, ForeignKey, Enum, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from .database import Base
import enum


class DocumentType(str, enum.Enum):
    INVOICE = "invoice"
    ESTIMATE = "estimate"


class BusinessType(str, enum.Enum):
    CONCRETE = "concrete"
    MASONRY = "masonry"


class DocumentStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    APPROVED = "approved"
    DECLINED = "declined"
    CONVERTED = "converted"


# Allowed transitions per document type. Setting the current status again is a no-op.
STATUS_TRANSITIONS = {
    DocumentType.INVOICE: {
        DocumentStatus.DRAFT: {DocumentStatus.SENT, DocumentStatus.PAID},
        DocumentStatus.SENT: {DocumentStatus.PAID, DocumentStatus.OVERDUE, DocumentStatus.DRAFT},
        DocumentStatus.OVERDUE: {DocumentStatus.PAID, DocumentStatus.SENT},
        DocumentStatus.PAID: set(),
    },
    DocumentType.ESTIMATE: {
        DocumentStatus.DRAFT: {DocumentStatus.SENT, DocumentStatus.APPROVED, DocumentStatus.DECLINED},
        DocumentStatus.SENT: {DocumentStatus.APPROVED, DocumentStatus.DECLINED, DocumentStatus.DRAFT},
        DocumentStatus.APPROVED: {DocumentStatus.CONVERTED, DocumentStatus.SENT},
        DocumentStatus.DECLINED: {DocumentStatus.SENT},
        DocumentStatus.CONVERTED: set(),
    },
}

NUMBER_PREFIXES = {
    DocumentType.INVOICE: "INV",
    DocumentType.ESTIMATE: "EST",
}


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String)
    phone = Column(String)
    address = Column(Text)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    documents = relationship("Document", back_populates="customer")


class Document(Base):
    """An invoice or an estimate. Both share numbering rules, line items and totals."""
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    doc_type = Column(Enum(DocumentType), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)  # Per-type counter, never reused
    number = Column(String, unique=True, nullable=False)
    business_type = Column(Enum(BusinessType), default=BusinessType.CONCRETE)
    status = Column(Enum(DocumentStatus), default=DocumentStatus.DRAFT)

    # Customer snapshot, kept on the document so later customer edits don't rewrite history
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    customer_name = Column(String, nullable=False)
    customer_email = Column(String)
    customer_phone = Column(String)
    customer_address = Column(Text)

    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)      # Invoices
    valid_until = Column(Date, nullable=True)   # Estimates
    notes = Column(Text)

    # Totals
    subtotal = Column(Float, default=0.0)
    tax_rate = Column(Float, default=0.0825)
    tax = Column(Float, default=0.0)
    total = Column(Float, default=0.0)

    # Estimate approval
    signature_data = Column(Text, nullable=True)  # data:image/png;base64,...
    signature_name = Column(String, nullable=True)
    signed_at = Column(DateTime, nullable=True)

    # Estimate <-> invoice link
    converted_from_id = Column(Integer, ForeignKey("documents.id"), nullable=True)
    converted_to_id = Column(Integer, ForeignKey("documents.id"), nullable=True)

    last_emailed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer", back_populates="documents")
    line_items = relationship(
        "LineItem", back_populates="document",
        cascade="all, delete-orphan", order_by="LineItem.position",
    )
    email_logs = relationship("EmailLog", back_populates="document", cascade="all, delete-orphan")


class LineItem(Base):
    __tablename__ = "line_items"

    id = Column(Integer, primary_key=True, index=True)
    document_id = Column(Integer, ForeignKey("documents.id"), nullable=False)
    position = Column(Integer, default=0)
    description = Column(String, nullable=False)
    service_type = Column(String, default="custom_service")  # Calculator key that produced it
    quantity = Column(Float, default=1.0)
    unit = Column(String, default="job")
    unit_price = Column(Float, default=0.0)
    amount = Column(Float, default=0.0)
    details_json = Column(JSON, nullable=True)  # Calculation snapshot

    document = relationship("Document", back_populates="line_items")


class EmailLog(Base):
    """One row per composed e-mail. The history view and last-sent tracking read from here."""
    __tablename__ = "email_logs"

    id = Column(Integer, primary_key=True, index=True)
    document_id = Column(Integer, ForeignKey("documents.id"), nullable=False)
    recipient = Column(String, nullable=True)
    subject = Column(String, nullable=False)
    template = Column(String, default="invoice")
    action = Column(String, nullable=False)  # 'mailto' | 'copy'
    created_at = Column(DateTime, default=datetime.utcnow)

    document = relationship("Document", back_populates="email_logs")


class PricingSetting(Base):
    """Persisted override for one PricingConfig field."""
    __tablename__ = "pricing_settings"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String, unique=True, nullable=False)
    value = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class DocumentCounter(Base):
    """Last issued sequence per document type. Only ever moves forward."""
    __tablename__ = "document_counters"

    doc_type = Column(Enum(DocumentType), primary_key=True)
    last_sequence = Column(Integer, nullable=False, default=0)

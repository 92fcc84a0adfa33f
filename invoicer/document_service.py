"""
Invoice & estimate service.

One DocumentService per request, constructed with its session and document
type; no module-level "current invoice" state. Totals are recomputed on every
line-item change:

    amount   = quantity × unit_price           (per line item)
    subtotal = Σ amount
    tax      = subtotal × tax_rate             (rate captured at creation)
    total    = subtotal + tax
"""

import base64
import binascii
import csv
import io
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models
from .config import settings
from .models import DocumentStatus, DocumentType, STATUS_TRANSITIONS, NUMBER_PREFIXES

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "data:image/png;base64,"
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
MAX_SIGNATURE_BYTES = 512 * 1024


class DocumentError(ValueError):
    """Request can't be applied to the document. Maps to an HTTP 4xx."""
    status_code = 400


class InvalidLineItem(DocumentError):
    pass


class InvalidSignature(DocumentError):
    pass


class InvalidStatusTransition(DocumentError):
    status_code = 409


class DocumentStateError(DocumentError):
    status_code = 409


class DocumentNotFound(LookupError):
    pass


class CustomerNotFound(LookupError):
    pass


def _today() -> date:
    return datetime.utcnow().date()


class DocumentService:

    def __init__(self, db: Session, doc_type: DocumentType,
                 tax_rate: float = None, valid_days: int = None, due_days: int = None):
        self.db = db
        self.doc_type = DocumentType(doc_type)
        self.tax_rate = settings.TAX_RATE if tax_rate is None else tax_rate
        self.valid_days = settings.ESTIMATE_VALID_DAYS if valid_days is None else valid_days
        self.due_days = settings.INVOICE_DUE_DAYS if due_days is None else due_days

    @property
    def label(self) -> str:
        return self.doc_type.value

    # --- Numbering ---

    def next_number(self, issue_date: date = None) -> tuple:
        """(sequence, number) the next create would issue. Does not reserve it."""
        sequence = self._counter(reserve=False).last_sequence + 1
        return sequence, self._format_number(sequence, issue_date)

    def _claim_number(self, issue_date: date) -> tuple:
        """Advance the counter inside the caller's transaction."""
        counter = self._counter()
        counter.last_sequence += 1
        return counter.last_sequence, self._format_number(counter.last_sequence, issue_date)

    def _counter(self, reserve: bool = True) -> models.DocumentCounter:
        counter = self.db.query(models.DocumentCounter).filter(
            models.DocumentCounter.doc_type == self.doc_type
        ).first()
        if counter is None:
            # Databases that predate counters
            current = self.db.query(func.max(models.Document.sequence)).filter(
                models.Document.doc_type == self.doc_type
            ).scalar()
            counter = models.DocumentCounter(doc_type=self.doc_type, last_sequence=current or 0)
            if reserve:
                self.db.add(counter)
        return counter

    def _format_number(self, sequence: int, issue_date: date = None) -> str:
        year = (issue_date or _today()).year
        return f"{NUMBER_PREFIXES[self.doc_type]}-{year}-{str(sequence).zfill(4)}"

    # --- Queries ---

    def get(self, document_id: int) -> models.Document:
        doc = self.db.query(models.Document).filter(
            models.Document.id == document_id,
            models.Document.doc_type == self.doc_type,
        ).first()
        if not doc:
            raise DocumentNotFound(f"{self.label.title()} {document_id} not found")
        return doc

    def list_documents(self, status: Optional[str] = None, customer_id: Optional[int] = None,
             skip: int = 0, limit: int = 100) -> list:
        query = self.db.query(models.Document).filter(models.Document.doc_type == self.doc_type)
        if status:
            query = query.filter(models.Document.status == self._status(status))
        if customer_id:
            query = query.filter(models.Document.customer_id == customer_id)
        return query.order_by(models.Document.sequence.desc()).offset(skip).limit(limit).all()

    # --- Writes ---

    def create(self, data: dict) -> models.Document:
        issue_date = data.get("issue_date") or _today()
        sequence, number = self._claim_number(issue_date)
        customer = self._resolve_customer(data)

        doc = models.Document(
            doc_type=self.doc_type,
            sequence=sequence,
            number=number,
            business_type=models.BusinessType(data.get("business_type") or "concrete"),
            status=DocumentStatus.DRAFT,
            customer_id=customer.id,
            customer_name=customer.name if not data.get("customer_name") else data["customer_name"].strip(),
            customer_email=data.get("customer_email") or customer.email,
            customer_phone=data.get("customer_phone") or customer.phone,
            customer_address=data.get("customer_address") or customer.address,
            issue_date=issue_date,
            notes=data.get("notes"),
            tax_rate=self.tax_rate,
        )
        self._set_dates(doc)
        self.db.add(doc)
        self.db.flush()

        for item in data.get("line_items") or []:
            self._append_item(doc, item)

        status = data.get("status")
        if status:
            status = self._status(status)
            if status == DocumentStatus.CONVERTED:
                raise DocumentStateError("Estimates become 'converted' only through conversion")
            doc.status = status

        self.recalculate_totals(doc)
        self.db.commit()
        self.db.refresh(doc)
        logger.info("Created %s %s for %s (total $%.2f)", self.label, doc.number, doc.customer_name, doc.total)
        return doc

    def update(self, document_id: int, data: dict) -> models.Document:
        doc = self.get(document_id)
        self._ensure_editable(doc)

        status = data.pop("status", None)
        for field in ("customer_email", "customer_phone", "customer_address", "notes"):
            if field in data:
                setattr(doc, field, data[field])
        if data.get("customer_name"):
            doc.customer_name = data["customer_name"].strip()
        if data.get("business_type"):
            doc.business_type = models.BusinessType(data["business_type"])
        if data.get("issue_date"):
            doc.issue_date = data["issue_date"]
            self._set_dates(doc)
        if status:
            self.set_status(doc, status)

        self.db.commit()
        self.db.refresh(doc)
        return doc

    def delete(self, document_id: int) -> None:
        doc = self.get(document_id)
        # Unlink conversions pointing at this document
        self.db.query(models.Document).filter(
            models.Document.converted_to_id == doc.id
        ).update({models.Document.converted_to_id: None})
        self.db.query(models.Document).filter(
            models.Document.converted_from_id == doc.id
        ).update({models.Document.converted_from_id: None})
        self.db.delete(doc)
        self.db.commit()
        logger.info("Deleted %s %s", self.label, doc.number)

    def set_status(self, doc: models.Document, status) -> None:
        status = self._status(status)
        if status == doc.status:
            return
        if status == DocumentStatus.CONVERTED:
            raise DocumentStateError("Estimates become 'converted' only through conversion")
        allowed = STATUS_TRANSITIONS[self.doc_type].get(doc.status, set())
        if status not in allowed:
            raise InvalidStatusTransition(
                f"Cannot move {self.label} {doc.number} from '{doc.status.value}' to '{status.value}'"
            )
        logger.info("%s %s: %s -> %s", self.label.title(), doc.number, doc.status.value, status.value)
        doc.status = status

    # --- Line items ---

    def add_line_item(self, document_id: int, item: dict) -> models.Document:
        doc = self.get(document_id)
        self._ensure_editable(doc)
        self._append_item(doc, item)
        self.recalculate_totals(doc)
        self.db.commit()
        self.db.refresh(doc)
        return doc

    def add_calculated_item(self, document_id: int, calculation: dict,
                            description: str = None) -> models.Document:
        """Append the line item suggested by a calculator run (see calculators.base)."""
        item = dict(calculation["line_item"])
        if description:
            item["description"] = description
        return self.add_line_item(document_id, item)

    def remove_line_item(self, document_id: int, item_id: int) -> models.Document:
        doc = self.get(document_id)
        self._ensure_editable(doc)
        item = next((i for i in doc.line_items if i.id == item_id), None)
        if item is None:
            raise DocumentNotFound(f"Line item {item_id} not found on {doc.number}")
        doc.line_items.remove(item)
        self.recalculate_totals(doc)
        self.db.commit()
        self.db.refresh(doc)
        return doc

    def recalculate_totals(self, doc: models.Document) -> None:
        subtotal = 0.0
        for item in doc.line_items:
            item.amount = round(item.quantity * item.unit_price, 2)
            subtotal += item.amount
        doc.subtotal = round(subtotal, 2)
        doc.tax = round(doc.subtotal * (doc.tax_rate or 0.0), 2)
        doc.total = round(doc.subtotal + doc.tax, 2)

    # --- Estimate approval ---

    def sign(self, document_id: int, signer_name: str, signature_data: str) -> models.Document:
        doc = self.get(document_id)
        self._require_estimate(doc, "signed")
        self._ensure_editable(doc)

        signer_name = (signer_name or "").strip()
        if not signer_name:
            raise InvalidSignature("Signer name is required")
        validate_signature(signature_data)

        self.set_status(doc, DocumentStatus.APPROVED)
        doc.signature_name = signer_name
        doc.signature_data = signature_data
        doc.signed_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(doc)
        logger.info("Estimate %s signed by %s", doc.number, signer_name)
        return doc

    def clear_signature(self, document_id: int) -> models.Document:
        doc = self.get(document_id)
        self._require_estimate(doc, "unsigned")
        self._ensure_editable(doc)
        doc.signature_name = None
        doc.signature_data = None
        doc.signed_at = None
        if doc.status == DocumentStatus.APPROVED:
            self.set_status(doc, DocumentStatus.SENT)
        self.db.commit()
        self.db.refresh(doc)
        return doc

    def convert_to_invoice(self, document_id: int) -> models.Document:
        """
        Copy an estimate into a new draft invoice and mark the estimate converted.
        Signature fields stay on the estimate.
        """
        estimate = self.get(document_id)
        self._require_estimate(estimate, "converted")
        if estimate.status == DocumentStatus.CONVERTED:
            raise DocumentStateError(f"Estimate {estimate.number} was already converted")
        if estimate.status == DocumentStatus.DECLINED:
            raise DocumentStateError(f"Estimate {estimate.number} was declined")

        invoices = DocumentService(self.db, DocumentType.INVOICE, tax_rate=estimate.tax_rate,
                                   due_days=self.due_days)
        invoice = invoices.create({
            "business_type": estimate.business_type.value,
            "customer_id": estimate.customer_id,
            "customer_name": estimate.customer_name,
            "customer_email": estimate.customer_email,
            "customer_phone": estimate.customer_phone,
            "customer_address": estimate.customer_address,
            "notes": estimate.notes,
            "line_items": [
                {
                    "description": i.description,
                    "service_type": i.service_type,
                    "quantity": i.quantity,
                    "unit": i.unit,
                    "unit_price": i.unit_price,
                    "details": i.details_json,
                }
                for i in estimate.line_items
            ],
        })
        invoice.converted_from_id = estimate.id
        estimate.converted_to_id = invoice.id
        estimate.status = DocumentStatus.CONVERTED
        self.db.commit()
        self.db.refresh(invoice)
        logger.info("Converted estimate %s into invoice %s", estimate.number, invoice.number)
        return invoice

    # --- E-mail ---

    def record_email(self, doc: models.Document, composed: dict, mark_sent: bool = False) -> models.EmailLog:
        log = models.EmailLog(
            document_id=doc.id,
            recipient=composed.get("to"),
            subject=composed["subject"],
            template=composed.get("template", self.label),
            action=composed["action"],
        )
        self.db.add(log)
        doc.last_emailed_at = datetime.utcnow()
        if mark_sent and doc.status == DocumentStatus.DRAFT:
            self.set_status(doc, DocumentStatus.SENT)
        self.db.commit()
        self.db.refresh(log)
        return log

    # --- Export ---

    def export_csv(self) -> str:
        buf = io.StringIO()
        writer = csv.writer(buf)
        is_estimate = self.doc_type == DocumentType.ESTIMATE
        header = ["Number", "Date", "Customer Name", "Email", "Phone", "Business Type",
                  "Subtotal", "Tax", "Total", "Status",
                  "Valid Until" if is_estimate else "Due Date", "Services"]
        if is_estimate:
            header += ["Approved By", "Signature Date"]
        writer.writerow(header)

        for doc in self.list_documents(limit=None):
            services = "; ".join(
                f"{i.description} ({i.quantity:g} {i.unit})" for i in doc.line_items
            )
            limit_date = doc.valid_until if is_estimate else doc.due_date
            row = [
                doc.number,
                doc.issue_date.isoformat(),
                doc.customer_name,
                doc.customer_email or "",
                doc.customer_phone or "",
                doc.business_type.value,
                f"{doc.subtotal:.2f}",
                f"{doc.tax:.2f}",
                f"{doc.total:.2f}",
                doc.status.value,
                limit_date.isoformat() if limit_date else "",
                services,
            ]
            if is_estimate:
                row += [doc.signature_name or "",
                        doc.signed_at.date().isoformat() if doc.signed_at else ""]
            writer.writerow(row)
        return buf.getvalue()

    # --- Internals ---

    def _status(self, value) -> DocumentStatus:
        try:
            status = DocumentStatus(value)
        except ValueError:
            raise DocumentError(f"Unknown status: {value!r}")
        if status not in STATUS_TRANSITIONS[self.doc_type]:
            raise DocumentError(f"'{status.value}' is not a valid {self.label} status")
        return status

    def _set_dates(self, doc: models.Document) -> None:
        if self.doc_type == DocumentType.INVOICE:
            doc.due_date = doc.issue_date + timedelta(days=self.due_days)
            doc.valid_until = None
        else:
            doc.valid_until = doc.issue_date + timedelta(days=self.valid_days)
            doc.due_date = None

    def _ensure_editable(self, doc: models.Document) -> None:
        if doc.status in (DocumentStatus.CONVERTED, DocumentStatus.PAID):
            raise DocumentStateError(f"{self.label.title()} {doc.number} is {doc.status.value} and can't be changed")

    def _require_estimate(self, doc: models.Document, action: str) -> None:
        if doc.doc_type != DocumentType.ESTIMATE:
            raise DocumentStateError(f"Only estimates can be {action}")

    def _append_item(self, doc: models.Document, item: dict) -> None:
        description = str(item.get("description") or "").strip()
        if not description:
            raise InvalidLineItem("Line item description is required")
        try:
            quantity = float(item.get("quantity", 1.0))
            unit_price = float(item.get("unit_price", item.get("amount", 0.0)))
        except (TypeError, ValueError):
            raise InvalidLineItem("Line item quantity and unit_price must be numbers")
        if quantity <= 0:
            raise InvalidLineItem("Line item quantity must be greater than 0")
        if unit_price < 0:
            raise InvalidLineItem("Line item unit_price must not be negative")

        doc.line_items.append(models.LineItem(
            position=len(doc.line_items),
            description=description,
            service_type=item.get("service_type") or "custom_service",
            quantity=quantity,
            unit=item.get("unit") or "job",
            unit_price=round(unit_price, 2),
            amount=round(quantity * round(unit_price, 2), 2),
            details_json=item.get("details"),
        ))

    def _resolve_customer(self, data: dict) -> models.Customer:
        """Existing customer by id, else match by e-mail then name, else create."""
        customer_id = data.get("customer_id")
        if customer_id:
            customer = self.db.query(models.Customer).filter(models.Customer.id == customer_id).first()
            if not customer:
                raise CustomerNotFound(f"Customer {customer_id} not found")
            return customer

        name = (data.get("customer_name") or "").strip()
        if not name:
            raise DocumentError("customer_name or customer_id is required")
        email = (data.get("customer_email") or "").strip()

        customer = None
        if email:
            customer = self.db.query(models.Customer).filter(
                func.lower(models.Customer.email) == email.lower()
            ).first()
        if customer is None:
            customer = self.db.query(models.Customer).filter(models.Customer.name == name).first()

        if customer is None:
            customer = models.Customer(name=name)
            self.db.add(customer)
            logger.info("New customer from %s: %s", self.label, name)
        for field in ("email", "phone", "address"):
            value = data.get(f"customer_{field}")
            if value:
                setattr(customer, field, value)
        self.db.flush()
        return customer


def validate_signature(signature_data: str) -> bytes:
    """Decode a PNG data URL captured from the signature pad. Raises InvalidSignature."""
    if not signature_data or not signature_data.startswith(SIGNATURE_PREFIX):
        raise InvalidSignature("Signature must be a PNG data URL")
    try:
        raw = base64.b64decode(signature_data[len(SIGNATURE_PREFIX):], validate=True)
    except (binascii.Error, ValueError):
        raise InvalidSignature("Signature is not valid base64")
    if not raw.startswith(PNG_MAGIC):
        raise InvalidSignature("Signature is not a PNG image")
    if len(raw) > MAX_SIGNATURE_BYTES:
        raise InvalidSignature("Signature image is too large")
    return raw


def document_to_dict(doc: models.Document) -> dict:
    return {
        "id": doc.id,
        "doc_type": doc.doc_type.value,
        "number": doc.number,
        "business_type": doc.business_type.value if doc.business_type else None,
        "status": doc.status.value if doc.status else "draft",
        "customer_id": doc.customer_id,
        "customer": {
            "name": doc.customer_name,
            "email": doc.customer_email,
            "phone": doc.customer_phone,
            "address": doc.customer_address,
        },
        "issue_date": doc.issue_date.isoformat() if doc.issue_date else None,
        "due_date": doc.due_date.isoformat() if doc.due_date else None,
        "valid_until": doc.valid_until.isoformat() if doc.valid_until else None,
        "notes": doc.notes,
        "line_items": [_item_to_dict(i) for i in doc.line_items],
        "subtotal": doc.subtotal,
        "tax_rate": doc.tax_rate,
        "tax": doc.tax,
        "total": doc.total,
        "signature": {
            "name": doc.signature_name,
            "signed_at": doc.signed_at.isoformat() if doc.signed_at else None,
            "data": doc.signature_data,
        } if doc.signature_data else None,
        "converted_from_id": doc.converted_from_id,
        "converted_to_id": doc.converted_to_id,
        "last_emailed_at": doc.last_emailed_at.isoformat() if doc.last_emailed_at else None,
        "created_at": doc.created_at.isoformat() if doc.created_at else None,
        "updated_at": doc.updated_at.isoformat() if doc.updated_at else None,
    }


def _item_to_dict(i: models.LineItem) -> dict:
    return {
        "id": i.id,
        "description": i.description,
        "service_type": i.service_type,
        "quantity": i.quantity,
        "unit": i.unit,
        "unit_price": i.unit_price,
        "amount": i.amount,
        "details": i.details_json,
    }

"""
JSON backup of customers, invoices, estimates and pricing overrides.

Import modes:
  - merge (default): existing customers are matched by e-mail, then name;
    documents whose number already exists are skipped.
  - replace: everything is wiped first, then the backup is loaded.
    Numbering counters survive the wipe.

Database ids are never trusted across installs; conversion links are
re-resolved through document numbers. Pricing overrides must validate
against the current defaults or the whole import is rolled back.
"""

import logging
from datetime import date, datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models
from .document_service import document_to_dict
from .pricing_settings import InvalidPricingConfig, build_pricing_config

logger = logging.getLogger(__name__)

BACKUP_VERSION = 1


class InvalidBackup(ValueError):
    pass


def export_data(db: Session) -> dict:
    customers = db.query(models.Customer).order_by(models.Customer.id).all()
    documents = db.query(models.Document).order_by(models.Document.doc_type, models.Document.sequence).all()
    by_id = {d.id: d.number for d in documents}

    exported_docs = []
    for doc in documents:
        data = document_to_dict(doc)
        data["sequence"] = doc.sequence
        data["converted_from"] = by_id.get(doc.converted_from_id)
        data["converted_to"] = by_id.get(doc.converted_to_id)
        exported_docs.append(data)

    return {
        "version": BACKUP_VERSION,
        "exported_at": datetime.utcnow().isoformat(),
        "customers": [
            {
                "id": c.id,
                "name": c.name,
                "email": c.email,
                "phone": c.phone,
                "address": c.address,
                "notes": c.notes,
            }
            for c in customers
        ],
        "documents": exported_docs,
        "pricing_settings": {
            s.key: s.value for s in db.query(models.PricingSetting).all()
        },
        "counters": {
            c.doc_type.value: c.last_sequence for c in db.query(models.DocumentCounter).all()
        },
    }


def import_data(db: Session, payload: dict, replace: bool = False) -> dict:
    """Load a backup produced by export_data. Returns per-type counts."""
    if not isinstance(payload, dict) or "customers" not in payload or "documents" not in payload:
        raise InvalidBackup("Backup must contain 'customers' and 'documents'")
    if payload.get("version", BACKUP_VERSION) > BACKUP_VERSION:
        raise InvalidBackup(f"Backup version {payload['version']} is newer than supported ({BACKUP_VERSION})")

    counts = {"customers": 0, "documents": 0, "line_items": 0, "skipped": 0, "pricing_settings": 0}
    try:
        if replace:
            _wipe(db)

        customer_ids = {}
        for data in payload["customers"]:
            customer, created = _upsert_customer(db, data)
            customer_ids[data.get("id")] = customer.id
            counts["customers"] += int(created)

        new_docs = {}
        for data in payload["documents"]:
            number = data.get("number")
            if not number:
                raise InvalidBackup("Every document needs a number")
            if db.query(models.Document).filter(models.Document.number == number).first():
                counts["skipped"] += 1
                continue
            doc = _build_document(data, customer_ids)
            db.add(doc)
            new_docs[number] = (doc, data)
            counts["documents"] += 1
            counts["line_items"] += len(doc.line_items)
        db.flush()

        for doc, data in new_docs.values():
            doc.converted_from_id = _doc_id(db, data.get("converted_from"))
            doc.converted_to_id = _doc_id(db, data.get("converted_to"))

        _advance_counters(db, payload.get("counters") or {})

        incoming = payload.get("pricing_settings") or {}
        if incoming:
            stored = {s.key: s.value for s in db.query(models.PricingSetting).all()}
            try:
                build_pricing_config(dict(stored, **incoming))
            except InvalidPricingConfig as e:
                raise InvalidBackup(f"Invalid pricing settings: {e}") from e
        for key, value in incoming.items():
            row = db.query(models.PricingSetting).filter(models.PricingSetting.key == key).first()
            if row:
                row.value = value
            else:
                db.add(models.PricingSetting(key=key, value=value))
            counts["pricing_settings"] += 1

        db.commit()
    except InvalidBackup:
        db.rollback()
        raise
    except (KeyError, TypeError, ValueError) as e:
        db.rollback()
        raise InvalidBackup(f"Malformed backup: {e}") from e

    logger.info("Backup imported (%s): %s", "replace" if replace else "merge", counts)
    return counts


def _wipe(db: Session) -> None:
    db.query(models.EmailLog).delete()
    db.query(models.LineItem).delete()
    db.query(models.Document).update({
        models.Document.converted_from_id: None,
        models.Document.converted_to_id: None,
    })
    db.query(models.Document).delete()
    db.query(models.Customer).delete()
    db.query(models.PricingSetting).delete()
    db.flush()


def _advance_counters(db: Session, exported: dict) -> None:
    """Move numbering past every restored or previously issued sequence. Never backwards."""
    for doc_type in models.DocumentType:
        highest = db.query(func.max(models.Document.sequence)).filter(
            models.Document.doc_type == doc_type
        ).scalar() or 0
        highest = max(highest, int(exported.get(doc_type.value) or 0))
        if not highest:
            continue
        counter = db.query(models.DocumentCounter).filter(
            models.DocumentCounter.doc_type == doc_type
        ).first()
        if counter is None:
            db.add(models.DocumentCounter(doc_type=doc_type, last_sequence=highest))
        elif counter.last_sequence < highest:
            counter.last_sequence = highest


def _upsert_customer(db: Session, data: dict) -> tuple:
    name = (data.get("name") or "").strip()
    if not name:
        raise InvalidBackup("Every customer needs a name")
    email = (data.get("email") or "").strip()

    customer = None
    if email:
        customer = db.query(models.Customer).filter(
            func.lower(models.Customer.email) == email.lower()
        ).first()
    if customer is None:
        customer = db.query(models.Customer).filter(models.Customer.name == name).first()
    if customer is not None:
        return customer, False

    customer = models.Customer(
        name=name,
        email=email or None,
        phone=data.get("phone"),
        address=data.get("address"),
        notes=data.get("notes"),
    )
    db.add(customer)
    db.flush()
    return customer, True


def _build_document(data: dict, customer_ids: dict) -> models.Document:
    customer = data.get("customer") or {}
    signature = data.get("signature") or {}
    doc = models.Document(
        doc_type=models.DocumentType(data["doc_type"]),
        sequence=int(data.get("sequence") or data["number"].rsplit("-", 1)[-1]),
        number=data["number"],
        business_type=models.BusinessType(data.get("business_type") or "concrete"),
        status=models.DocumentStatus(data.get("status") or "draft"),
        customer_id=customer_ids.get(data.get("customer_id")),
        customer_name=customer.get("name") or "Customer",
        customer_email=customer.get("email"),
        customer_phone=customer.get("phone"),
        customer_address=customer.get("address"),
        issue_date=_date(data.get("issue_date")) or date.today(),
        due_date=_date(data.get("due_date")),
        valid_until=_date(data.get("valid_until")),
        notes=data.get("notes"),
        subtotal=data.get("subtotal") or 0.0,
        tax_rate=data.get("tax_rate") or 0.0,
        tax=data.get("tax") or 0.0,
        total=data.get("total") or 0.0,
        signature_data=signature.get("data"),
        signature_name=signature.get("name"),
        signed_at=_datetime(signature.get("signed_at")),
    )
    for position, item in enumerate(data.get("line_items") or []):
        doc.line_items.append(models.LineItem(
            position=position,
            description=item["description"],
            service_type=item.get("service_type") or "custom_service",
            quantity=item.get("quantity", 1.0),
            unit=item.get("unit") or "job",
            unit_price=item.get("unit_price", 0.0),
            amount=item.get("amount", 0.0),
            details_json=item.get("details"),
        ))
    return doc


def _doc_id(db: Session, number):
    if not number:
        return None
    doc = db.query(models.Document).filter(models.Document.number == number).first()
    return doc.id if doc else None


def _date(value):
    return date.fromisoformat(value[:10]) if value else None


def _datetime(value):
    return datetime.fromisoformat(value) if value else None

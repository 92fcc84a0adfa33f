"""
Output tests: PDF generation and e-mail compose (no database).

Tests:
1-4.  PDF generation (bytes, estimate signature, unicode, job details)
5-10. E-mail compose (templates, placeholders, mailto, copy fallback)
"""

from urllib.parse import unquote

import pytest

from invoicer.calculators.concrete_leveling import ConcreteLevelingCalculator
from invoicer.config import settings
from invoicer.email_composer import EmailComposer, UnknownTemplate
from invoicer.pdf_generator import DocumentPDF, _job_details, _safe, generate_document_pdf

from conftest import SIGNATURE_PNG


# --- Sample data builders ---

def _sample_invoice(**overrides):
    doc = {
        "id": 1,
        "doc_type": "invoice",
        "number": "INV-2024-0001",
        "business_type": "concrete",
        "status": "sent",
        "customer": {
            "name": "John Smith",
            "email": "john.smith@email.com",
            "phone": "(440) 555-0123",
            "address": "123 Main St, Geneva, OH 44041",
        },
        "issue_date": "2024-01-15",
        "due_date": "2024-02-14",
        "valid_until": None,
        "notes": "Payment due within 30 days",
        "line_items": [{
            "id": 1,
            "description": "Driveway Concrete Leveling",
            "service_type": "concrete_sqft",
            "quantity": 250,
            "unit": "sq ft",
            "unit_price": 15.0,
            "amount": 3750.0,
            "details": None,
        }],
        "subtotal": 3750.0,
        "tax_rate": 0.0825,
        "tax": 309.38,
        "total": 4059.38,
        "signature": None,
    }
    doc.update(overrides)
    return doc


def _sample_estimate(**overrides):
    doc = _sample_invoice(
        doc_type="estimate",
        number="EST-2024-0002",
        business_type="masonry",
        status="approved",
        due_date=None,
        valid_until="2024-02-27",
        customer={"name": "Lisa Brown", "email": "lisa.brown@email.com", "phone": None, "address": None},
        signature={"name": "Lisa Brown", "signed_at": "2024-01-28T16:30:00", "data": SIGNATURE_PNG},
    )
    doc.update(overrides)
    return doc


def _leveling_item():
    calc = ConcreteLevelingCalculator()
    out = calc.calculate({
        "length": 10, "width": 20, "lift_inches": 1, "sides_settled": 1,
        "foam_type": "standard", "application_type": "lift",
    })
    item = dict(out["line_item"])
    item["id"] = 2
    return item


def _business(business_type="concrete"):
    return settings.business_profile(business_type)


# ============================================================
# 1-4. PDF
# ============================================================

def test_pdf_generates_valid_bytes():
    pdf_bytes = generate_document_pdf(_sample_invoice(), _business())
    assert isinstance(pdf_bytes, bytes)
    assert pdf_bytes[:5] == b"%PDF-"
    assert len(pdf_bytes) > 1000


def test_pdf_estimate_with_signature_image():
    unsigned = generate_document_pdf(_sample_estimate(signature=None), _business("masonry"))
    signed = generate_document_pdf(_sample_estimate(), _business("masonry"))
    assert signed[:5] == b"%PDF-"
    assert b"/Subtype /Image" in signed
    assert b"/Subtype /Image" not in unsigned


def test_pdf_handles_unicode_and_empty_items():
    doc = _sample_invoice(
        notes="Slab lifted — “no” cracks • 3 yd³",
        line_items=[],
        customer={"name": "José Núñez", "email": None, "phone": None, "address": None},
    )
    assert generate_document_pdf(doc, _business())[:5] == b"%PDF-"
    assert _safe("—") == " - "
    assert _safe(None) == ""


def test_pdf_job_details_for_leveling_items():
    item = _leveling_item()
    doc = _sample_invoice(line_items=[_sample_invoice()["line_items"][0], item])
    details = _job_details(doc["line_items"])
    assert len(details) == 1
    description, lines = details[0]
    assert description.startswith("Concrete leveling - 10' x 20' slab")
    assert lines[0] == "Slab: 10' x 20' = 200 sq ft, 1\" lift"
    assert lines[-1] == "Estimated range: $1,677.33 - $3,490.74"
    assert generate_document_pdf(doc, _business())[:5] == b"%PDF-"
    assert DocumentPDF(business_name="Superior").business_name == "Superior"


# ============================================================
# 5-10. E-mail compose
# ============================================================

def test_compose_invoice_template():
    composed = EmailComposer().compose(_sample_invoice(), _business())
    assert composed["template"] == "invoice"
    assert composed["subject"] == "Invoice #INV-2024-0001 from Superior Concrete Leveling LLC"
    assert composed["body"].startswith("Dear John Smith,")
    assert "Amount Due: $4,059.38" in composed["body"]
    assert "Due Date: February 14, 2024" in composed["body"]
    assert "Driveway Concrete Leveling - 250 sq ft x $15.00 = $3,750.00" in composed["body"]


def test_compose_mailto_encodes_everything():
    composed = EmailComposer(max_mailto_length=100000).compose(_sample_invoice(), _business())
    url = composed["mailto_url"]
    assert composed["action"] == "mailto"
    assert url.startswith("mailto:john.smith@email.com?subject=Invoice%20%23INV-2024-0001")
    assert "\n" not in url
    body = url.split("&body=", 1)[1]
    assert unquote(body) == composed["body"]


def test_long_body_falls_back_to_intro_only_mailto():
    composed = EmailComposer(max_mailto_length=1500).compose(_sample_invoice(), _business())
    assert composed["action"] == "mailto"
    assert "Services" not in unquote(composed["mailto_url"])
    assert "Services:" in composed["copy_text"]


def test_too_long_even_for_intro_falls_back_to_copy():
    composed = EmailComposer(max_mailto_length=50).compose(_sample_invoice(), _business())
    assert composed["action"] == "copy"
    assert composed["mailto_url"] is None
    assert composed["copy_text"].startswith("To: john.smith@email.com\nSubject: ")


def test_custom_subject_message_and_recipient():
    composed = EmailComposer().compose(
        _sample_estimate(), _business("masonry"),
        to="office@example.com", subject="Your quote", message="Hi Lisa,\n\nQuote attached.",
    )
    assert composed["to"] == "office@example.com"
    assert composed["subject"] == "Your quote"
    assert composed["body"].startswith("Hi Lisa,\n\nQuote attached.")
    assert "ESTIMATE #EST-2024-0002" in composed["body"]
    assert "Payment Terms" not in composed["body"]


def test_template_rules():
    composer = EmailComposer()
    assert composer.template_for(_sample_estimate()) == "estimate"
    assert composer.template_for(_sample_invoice(), "reminder") == "reminder"
    with pytest.raises(UnknownTemplate):
        composer.template_for(_sample_estimate(), "reminder")
    with pytest.raises(UnknownTemplate):
        composer.template_for(_sample_invoice(), "newsletter")

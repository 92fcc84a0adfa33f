"""
Invoice API tests.

Tests:
1-4.   Create: numbering, dates, totals, customer snapshot
5-8.   Line items: manual, calculated, removal, validation
9-12.  Status transitions and read-only paid invoices
13-15. Edit, list filters, delete
16-18. PDF, e-mail compose, CSV export
"""

import csv
import io
from datetime import date

import pytest

from invoicer import models
from invoicer.document_service import DocumentService


# ============================================================
# 1-4. Create
# ============================================================

def test_create_invoice_numbering_and_dates(make_document):
    invoice = make_document("invoices")
    assert invoice["number"] == "INV-2024-0001"
    assert invoice["doc_type"] == "invoice"
    assert invoice["status"] == "draft"
    assert invoice["issue_date"] == "2024-01-15"
    assert invoice["due_date"] == "2024-02-14"
    assert invoice["valid_until"] is None

    second = make_document("invoices", issue_date="2025-03-01")
    assert second["number"] == "INV-2025-0002"


def test_totals_use_tax_rate(make_document):
    invoice = make_document("invoices")
    assert invoice["subtotal"] == 3750.00
    assert invoice["tax_rate"] == 0.0825
    assert invoice["tax"] == pytest.approx(309.38, abs=0.01)
    assert invoice["total"] == pytest.approx(4059.38, abs=0.01)
    assert invoice["total"] == round(invoice["subtotal"] + invoice["tax"], 2)
    assert invoice["line_items"][0]["amount"] == 3750.00


def test_invoice_and_estimate_sequences_are_separate(make_document):
    make_document("invoices")
    estimate = make_document("estimates")
    assert estimate["number"] == "EST-2024-0001"


def test_numbers_not_reused_after_delete(client, make_document):
    first = make_document("invoices")
    make_document("invoices")
    client.delete(f"/api/invoices/{first['id']}")
    third = make_document("invoices")
    assert third["number"] == "INV-2024-0003"


def test_latest_number_not_reused_after_delete(client, make_document, db):
    make_document("invoices")
    second = make_document("invoices")
    assert client.delete(f"/api/invoices/{second['id']}").status_code == 200

    third = make_document("invoices")
    assert third["number"] == "INV-2024-0003"

    counter = db.query(models.DocumentCounter).filter(
        models.DocumentCounter.doc_type == models.DocumentType.INVOICE
    ).one()
    assert counter.last_sequence == 3


def test_next_number_preview_does_not_reserve(make_document, db):
    make_document("invoices")
    service = DocumentService(db, models.DocumentType.INVOICE)
    assert service.next_number(date(2024, 6, 1)) == (2, "INV-2024-0002")
    assert service.next_number(date(2024, 6, 1)) == (2, "INV-2024-0002")
    assert DocumentService(db, models.DocumentType.ESTIMATE).next_number(date(2024, 6, 1)) == (1, "EST-2024-0001")


def test_failed_create_does_not_consume_number(client, make_document):
    response = client.post("/api/estimates/", json={"customer_name": "Mike Davis", "status": "converted"})
    assert response.status_code == 409
    assert make_document("estimates")["number"] == "EST-2024-0001"


def test_create_requires_customer(client):
    response = client.post("/api/invoices/", json={"line_items": []})
    assert response.status_code == 400

    response = client.post("/api/invoices/", json={"customer_id": 42})
    assert response.status_code == 404


# ============================================================
# 5-8. Line items
# ============================================================

def test_add_and_remove_line_item(client, make_document):
    invoice = make_document("invoices", line_items=[])
    assert invoice["total"] == 0

    response = client.post(f"/api/invoices/{invoice['id']}/line-items", json={
        "description": "Outdoor Fireplace Construction",
        "quantity": 1,
        "unit": "project",
        "unit_price": 2500.00,
    })
    assert response.status_code == 200
    data = response.json()
    assert data["subtotal"] == 2500.00
    assert data["tax"] == 206.25
    assert data["total"] == 2706.25

    item_id = data["line_items"][0]["id"]
    data = client.delete(f"/api/invoices/{invoice['id']}/line-items/{item_id}").json()
    assert data["line_items"] == []
    assert data["total"] == 0

    assert client.delete(f"/api/invoices/{invoice['id']}/line-items/{item_id}").status_code == 404


def test_add_calculated_concrete_leveling_item(client, make_document):
    invoice = make_document("invoices", line_items=[])
    response = client.post(f"/api/invoices/{invoice['id']}/line-items/calculated", json={
        "calculator": "concrete_leveling",
        "fields": {
            "length": 10, "width": 20, "lift_inches": 1, "sides_settled": 1,
            "foam_type": "standard", "application_type": "lift", "price_point": "high",
        },
    })
    assert response.status_code == 200
    data = response.json()
    item = data["line_items"][0]
    assert item["service_type"] == "concrete_leveling"
    assert item["unit_price"] == 3490.74
    assert item["details"]["square_footage"] == 200
    assert data["subtotal"] == 3490.74
    assert data["total"] == pytest.approx(3778.73, abs=0.01)


def test_calculated_item_errors(client, make_document):
    invoice = make_document("invoices")
    response = client.post(f"/api/invoices/{invoice['id']}/line-items/calculated", json={
        "calculator": "concrete_sqft", "fields": {"project_type": "patio", "square_footage": 0},
    })
    assert response.status_code == 422
    assert response.json()["error"] == "invalid_dimensions"

    response = client.post(f"/api/invoices/{invoice['id']}/line-items/calculated", json={
        "calculator": "roofing", "fields": {},
    })
    assert response.status_code == 404

    # Nothing was added
    assert len(client.get(f"/api/invoices/{invoice['id']}").json()["line_items"]) == 1


@pytest.mark.parametrize("item", [
    {"description": "", "quantity": 1, "unit_price": 10},
    {"description": "Patch", "quantity": 0, "unit_price": 10},
    {"description": "Patch", "quantity": 1, "unit_price": -10},
])
def test_invalid_line_items_rejected(client, make_document, item):
    invoice = make_document("invoices")
    response = client.post(f"/api/invoices/{invoice['id']}/line-items", json=item)
    assert response.status_code == 400


# ============================================================
# 9-12. Status
# ============================================================

def test_invoice_status_flow(client, make_document):
    invoice = make_document("invoices")
    url = f"/api/invoices/{invoice['id']}"
    assert client.patch(url, json={"status": "sent"}).json()["status"] == "sent"
    assert client.patch(url, json={"status": "overdue"}).json()["status"] == "overdue"
    assert client.patch(url, json={"status": "paid"}).json()["status"] == "paid"


@pytest.mark.parametrize("status, code", [
    ("approved", 400),   # not an invoice status
    ("bogus", 422),      # not a status at all
])
def test_invalid_invoice_status(client, make_document, status, code):
    invoice = make_document("invoices")
    response = client.patch(f"/api/invoices/{invoice['id']}", json={"status": status})
    assert response.status_code == code


def test_disallowed_transition_409(client, make_document):
    invoice = make_document("invoices")
    response = client.patch(f"/api/invoices/{invoice['id']}", json={"status": "overdue"})
    assert response.status_code == 409


def test_paid_invoice_is_read_only(client, make_document):
    invoice = make_document("invoices", status="paid")
    assert invoice["status"] == "paid"
    url = f"/api/invoices/{invoice['id']}"
    assert client.patch(url, json={"notes": "late edit"}).status_code == 409
    assert client.post(f"{url}/line-items", json={"description": "Extra", "unit_price": 5}).status_code == 409


# ============================================================
# 13-15. Edit / list / delete
# ============================================================

def test_edit_fields_and_issue_date(client, make_document):
    invoice = make_document("invoices")
    data = client.patch(f"/api/invoices/{invoice['id']}", json={
        "notes": "Payment due within 30 days",
        "business_type": "masonry",
        "issue_date": "2024-02-01",
    }).json()
    assert data["notes"] == "Payment due within 30 days"
    assert data["business_type"] == "masonry"
    assert data["due_date"] == "2024-03-02"
    assert data["number"] == invoice["number"]


def test_list_filters(client, make_document):
    make_document("invoices")
    make_document("invoices", customer_name="Sarah Johnson", customer_email="sarah@email.com", status="paid")
    all_invoices = client.get("/api/invoices/").json()
    assert [i["number"] for i in all_invoices] == ["INV-2024-0002", "INV-2024-0001"]

    paid = client.get("/api/invoices/?status=paid").json()
    assert [i["customer"]["name"] for i in paid] == ["Sarah Johnson"]

    customer_id = all_invoices[1]["customer_id"]
    mine = client.get(f"/api/invoices/?customer_id={customer_id}").json()
    assert [i["number"] for i in mine] == ["INV-2024-0001"]


def test_delete_and_404(client, make_document):
    invoice = make_document("invoices")
    assert client.delete(f"/api/invoices/{invoice['id']}").status_code == 200
    assert client.get(f"/api/invoices/{invoice['id']}").status_code == 404


def test_estimate_not_visible_as_invoice(client, make_document):
    estimate = make_document("estimates")
    assert client.get(f"/api/invoices/{estimate['id']}").status_code == 404


# ============================================================
# 16-18. Output
# ============================================================

def test_invoice_pdf(client, make_document):
    invoice = make_document("invoices")
    response = client.get(f"/api/invoices/{invoice['id']}/pdf")
    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert "INV-2024-0001.pdf" in response.headers["content-disposition"]
    assert response.content[:5] == b"%PDF-"


def test_compose_email_mailto_and_mark_sent(client, make_document):
    invoice = make_document("invoices", line_items=[
        {"description": "Driveway Concrete Leveling", "quantity": 250, "unit": "sq ft", "unit_price": 15}
    ])
    response = client.post(f"/api/invoices/{invoice['id']}/email", json={"mark_sent": True})
    assert response.status_code == 200
    data = response.json()
    assert data["template"] == "invoice"
    assert data["to"] == "john.smith@email.com"
    assert data["subject"] == "Invoice #INV-2024-0001 from Superior Concrete Leveling LLC"
    assert data["action"] == "mailto"
    assert data["mailto_url"].startswith("mailto:john.smith@email.com?subject=")
    assert data["status"] == "sent"

    history = client.get(f"/api/invoices/{invoice['id']}/emails").json()
    assert len(history) == 1
    assert history[0]["action"] == "mailto"
    assert client.get(f"/api/invoices/{invoice['id']}").json()["last_emailed_at"]


def test_compose_email_without_recipient_falls_back_to_copy(client, make_document):
    invoice = make_document("invoices", customer_email=None)
    data = client.post(f"/api/invoices/{invoice['id']}/email", json={}).json()
    assert data["action"] == "copy"
    assert data["mailto_url"] is None
    assert "INVOICE #INV-2024-0001" in data["copy_text"]
    assert data["status"] == "draft"


def test_reminder_template_and_unknown_template(client, make_document):
    invoice = make_document("invoices")
    data = client.post(f"/api/invoices/{invoice['id']}/email", json={"template": "reminder"}).json()
    assert data["subject"] == "Payment Reminder - Invoice #INV-2024-0001"

    response = client.post(f"/api/invoices/{invoice['id']}/email", json={"template": "fax"})
    assert response.status_code == 400


def test_export_csv(client, make_document):
    make_document("invoices")
    response = client.get("/api/invoices/export.csv")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")

    rows = list(csv.reader(io.StringIO(response.text)))
    assert rows[0][:3] == ["Number", "Date", "Customer Name"]
    assert "Due Date" in rows[0]
    assert rows[1][0] == "INV-2024-0001"
    assert float(rows[1][8]) == pytest.approx(4059.38, abs=0.01)
    assert rows[1][11] == "Driveway Concrete Leveling (250 sq ft)"

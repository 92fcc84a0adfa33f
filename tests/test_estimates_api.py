"""
Estimate API tests.

Tests:
1-2.  Create: EST numbering, valid-until date
3-7.  Signature capture: approve, validation, clear
8-12. Conversion to invoice
13-14. Status rules
15-16. PDF and CSV for estimates
"""

import base64
import csv
import io

import pytest

from conftest import SIGNATURE_PNG


def _sign(client, estimate_id, name="Lisa Brown", data=SIGNATURE_PNG):
    return client.post(f"/api/estimates/{estimate_id}/signature", json={
        "signer_name": name,
        "signature_data": data,
    })


# ============================================================
# 1-2. Create
# ============================================================

def test_create_estimate(make_document):
    estimate = make_document("estimates", issue_date="2024-01-25")
    assert estimate["number"] == "EST-2024-0001"
    assert estimate["doc_type"] == "estimate"
    assert estimate["valid_until"] == "2024-02-24"
    assert estimate["due_date"] is None
    assert estimate["signature"] is None


def test_estimate_status_paid_rejected(client):
    response = client.post("/api/estimates/", json={"customer_name": "Mike Davis", "status": "paid"})
    assert response.status_code == 400


# ============================================================
# 3-7. Signature
# ============================================================

def test_sign_approves_estimate(client, make_document):
    estimate = make_document("estimates")
    response = _sign(client, estimate["id"])
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "approved"
    assert data["signature"]["name"] == "Lisa Brown"
    assert data["signature"]["data"] == SIGNATURE_PNG
    assert data["signature"]["signed_at"]


@pytest.mark.parametrize("name, data", [
    ("", SIGNATURE_PNG),
    ("Lisa Brown", "not-a-data-url"),
    ("Lisa Brown", "data:image/png;base64,@@@"),
    ("Lisa Brown", "data:image/png;base64," + base64.b64encode(b"GIF89a....").decode()),
])
def test_invalid_signature_rejected(client, make_document, name, data):
    estimate = make_document("estimates")
    response = _sign(client, estimate["id"], name=name, data=data)
    assert response.status_code == 400
    assert client.get(f"/api/estimates/{estimate['id']}").json()["status"] == "draft"


def test_signing_declined_estimate_conflicts(client, make_document):
    estimate = make_document("estimates", status="declined")
    assert _sign(client, estimate["id"]).status_code == 409


def test_clear_signature_returns_to_sent(client, make_document):
    estimate = make_document("estimates")
    _sign(client, estimate["id"])
    response = client.delete(f"/api/estimates/{estimate['id']}/signature")
    assert response.status_code == 200
    data = response.json()
    assert data["signature"] is None
    assert data["status"] == "sent"


def test_invoices_have_no_signature_endpoint(client, make_document):
    invoice = make_document("invoices")
    response = client.post(f"/api/invoices/{invoice['id']}/signature", json={
        "signer_name": "John Smith", "signature_data": SIGNATURE_PNG,
    })
    assert response.status_code in (404, 405)


# ============================================================
# 8-12. Conversion
# ============================================================

def test_convert_approved_estimate(client, make_document):
    estimate = make_document(
        "estimates",
        business_type="masonry",
        notes="Materials and installation included.",
        line_items=[{"description": "Fire Pit Installation", "quantity": 1, "unit": "job", "unit_price": 1800}],
    )
    _sign(client, estimate["id"])

    response = client.post(f"/api/estimates/{estimate['id']}/convert")
    assert response.status_code == 200
    invoice = response.json()
    assert invoice["doc_type"] == "invoice"
    assert invoice["number"].startswith("INV-")
    assert invoice["status"] == "draft"
    assert invoice["business_type"] == "masonry"
    assert invoice["notes"] == "Materials and installation included."
    assert invoice["customer"] == estimate["customer"]
    assert invoice["customer_id"] == estimate["customer_id"]
    assert [i["description"] for i in invoice["line_items"]] == ["Fire Pit Installation"]
    assert invoice["total"] == estimate["total"]
    assert invoice["signature"] is None
    assert invoice["converted_from_id"] == estimate["id"]

    converted = client.get(f"/api/estimates/{estimate['id']}").json()
    assert converted["status"] == "converted"
    assert converted["converted_to_id"] == invoice["id"]
    assert converted["signature"]["name"] == "Lisa Brown"


def test_convert_unsigned_estimate(client, make_document):
    estimate = make_document("estimates")
    response = client.post(f"/api/estimates/{estimate['id']}/convert")
    assert response.status_code == 200
    assert client.get(f"/api/estimates/{estimate['id']}").json()["status"] == "converted"


def test_convert_twice_conflicts(client, make_document):
    estimate = make_document("estimates")
    client.post(f"/api/estimates/{estimate['id']}/convert")
    assert client.post(f"/api/estimates/{estimate['id']}/convert").status_code == 409
    assert len(client.get("/api/invoices/").json()) == 1


def test_converted_estimate_is_read_only(client, make_document):
    estimate = make_document("estimates")
    client.post(f"/api/estimates/{estimate['id']}/convert")
    url = f"/api/estimates/{estimate['id']}"
    assert client.patch(url, json={"notes": "changed"}).status_code == 409
    assert client.post(f"{url}/line-items", json={"description": "x", "unit_price": 1}).status_code == 409
    assert _sign(client, estimate["id"]).status_code == 409


def test_deleting_converted_invoice_unlinks_estimate(client, make_document):
    estimate = make_document("estimates")
    invoice = client.post(f"/api/estimates/{estimate['id']}/convert").json()
    assert client.delete(f"/api/invoices/{invoice['id']}").status_code == 200
    assert client.get(f"/api/estimates/{estimate['id']}").json()["converted_to_id"] is None


# ============================================================
# 13-14. Status rules
# ============================================================

def test_estimate_status_flow(client, make_document):
    estimate = make_document("estimates")
    url = f"/api/estimates/{estimate['id']}"
    assert client.patch(url, json={"status": "sent"}).json()["status"] == "sent"
    assert client.patch(url, json={"status": "declined"}).json()["status"] == "declined"
    assert client.post(f"{url}/convert").status_code == 409
    assert client.patch(url, json={"status": "sent"}).json()["status"] == "sent"


def test_converted_only_through_conversion(client, make_document):
    estimate = make_document("estimates", status="approved")
    response = client.patch(f"/api/estimates/{estimate['id']}", json={"status": "converted"})
    assert response.status_code == 409

    response = client.post("/api/estimates/", json={"customer_name": "Mike Davis", "status": "converted"})
    assert response.status_code == 409


# ============================================================
# 15-16. Output
# ============================================================

def test_signed_estimate_pdf(client, make_document):
    estimate = make_document("estimates")
    _sign(client, estimate["id"])
    response = client.get(f"/api/estimates/{estimate['id']}/pdf")
    assert response.status_code == 200
    assert response.content[:5] == b"%PDF-"
    assert "EST-2024-0001.pdf" in response.headers["content-disposition"]


def test_estimate_csv_has_approval_columns(client, make_document):
    estimate = make_document("estimates")
    _sign(client, estimate["id"], name="Mike Davis")
    rows = list(csv.reader(io.StringIO(client.get("/api/estimates/export.csv").text)))
    assert rows[0][-3:] == ["Services", "Approved By", "Signature Date"]
    assert "Valid Until" in rows[0]
    assert rows[1][9] == "approved"
    assert rows[1][-2] == "Mike Davis"
    assert rows[1][-1]


def test_estimate_email_template(client, make_document):
    estimate = make_document("estimates")
    data = client.post(f"/api/estimates/{estimate['id']}/email", json={}).json()
    assert data["template"] == "estimate"
    assert data["subject"] == "Estimate #EST-2024-0001 from Superior Concrete Leveling LLC"

    response = client.post(f"/api/estimates/{estimate['id']}/email", json={"template": "reminder"})
    assert response.status_code == 400

#!/usr/bin/env python3
"""
Seed demonstration invoices and estimates into an empty database.

Usage:
    python data/seed_sample_data.py [--force]

Creates two invoices (concrete + masonry) and two estimates, one of them
signed. Skips when documents already exist unless --force is given.
"""

import sys
from datetime import date
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


# 1x1 transparent PNG, stands in for a captured signature
SAMPLE_SIGNATURE = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

SAMPLE_INVOICES = [
    {
        "business_type": "concrete",
        "customer_name": "John Smith",
        "customer_email": "john.smith@email.com",
        "customer_phone": "(440) 555-0123",
        "customer_address": "123 Main St, Geneva, OH 44041",
        "issue_date": date(2024, 1, 15),
        "notes": "Payment due within 30 days",
        "status": "sent",
        "line_items": [{
            "description": "Driveway Concrete Leveling",
            "service_type": "concrete_sqft",
            "quantity": 250,
            "unit": "sq ft",
            "unit_price": 15.00,
        }],
    },
    {
        "business_type": "masonry",
        "customer_name": "Sarah Johnson",
        "customer_email": "sarah.johnson@email.com",
        "customer_phone": "(440) 555-0456",
        "customer_address": "456 Oak Ave, Geneva, OH 44041",
        "issue_date": date(2024, 1, 20),
        "notes": "Materials included in price",
        "status": "paid",
        "line_items": [{
            "description": "Outdoor Fireplace Construction",
            "quantity": 1,
            "unit": "project",
            "unit_price": 2500.00,
        }],
    },
]

SAMPLE_ESTIMATES = [
    {
        "business_type": "concrete",
        "customer_name": "Mike Davis",
        "customer_email": "mike.davis@email.com",
        "customer_phone": "(440) 555-0789",
        "customer_address": "789 Elm St, Geneva, OH 44041",
        "issue_date": date(2024, 1, 25),
        "notes": "This estimate is valid for 30 days. Work will begin upon customer approval.",
        "status": "sent",
        "line_items": [{
            "description": "Patio Concrete Leveling",
            "service_type": "concrete_sqft",
            "quantity": 180,
            "unit": "sq ft",
            "unit_price": 14.00,
        }],
    },
    {
        "business_type": "masonry",
        "customer_name": "Lisa Brown",
        "customer_email": "lisa.brown@email.com",
        "customer_phone": "(440) 555-0321",
        "customer_address": "321 Pine St, Geneva, OH 44041",
        "issue_date": date(2024, 1, 28),
        "notes": "Materials and installation included. Custom stone fire pit with seating area.",
        "line_items": [{
            "description": "Fire Pit Installation",
            "quantity": 1,
            "unit": "job",
            "unit_price": 1800.00,
        }],
        "signed_by": "Lisa Brown",
    },
]


def seed(db, force: bool = False) -> dict:
    """Insert the sample documents. Returns {"invoices": n, "estimates": n}."""
    from invoicer import models
    from invoicer.document_service import DocumentService
    from invoicer.models import DocumentType

    if not force and db.query(models.Document).count():
        return {"invoices": 0, "estimates": 0}

    invoices = DocumentService(db, DocumentType.INVOICE)
    for data in SAMPLE_INVOICES:
        invoices.create(dict(data))

    estimates = DocumentService(db, DocumentType.ESTIMATE)
    for data in SAMPLE_ESTIMATES:
        data = dict(data)
        signer = data.pop("signed_by", None)
        doc = estimates.create(data)
        if signer:
            estimates.sign(doc.id, signer, SAMPLE_SIGNATURE)

    return {"invoices": len(SAMPLE_INVOICES), "estimates": len(SAMPLE_ESTIMATES)}


def main():
    from invoicer.database import Base, SessionLocal, engine

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        counts = seed(db, force="--force" in sys.argv)
    finally:
        db.close()

    if not any(counts.values()):
        print("Documents already exist, nothing seeded (use --force to add samples anyway).")
        return
    print(f"Seeded {counts['invoices']} invoices and {counts['estimates']} estimates.")
    print("Done.")


if __name__ == "__main__":
    main()

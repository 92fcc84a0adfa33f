"""
Invoice and estimate endpoints.

Both routers are built by make_router() over a DocumentService bound to one
document type; estimates add signature capture and conversion.

/api/invoices/...            /api/estimates/...
    POST   /                     create
    GET    /                     list (?status=&customer_id=)
    GET    /export.csv           CSV export
    GET    /{id}                 detail
    PATCH  /{id}                 edit fields / change status
    DELETE /{id}
    POST   /{id}/line-items      manual line item
    POST   /{id}/line-items/calculated   run a calculator, append its line item
    DELETE /{id}/line-items/{item_id}
    GET    /{id}/pdf
    POST   /{id}/email           compose (mailto or copy)
    GET    /{id}/emails          compose history
  estimates only:
    POST   /{id}/signature
    DELETE /{id}/signature
    POST   /{id}/convert         -> new invoice
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlalchemy.orm import Session

from .. import schemas
from ..calculators.registry import get_calculator, has_calculator
from ..config import settings
from ..database import get_db
from ..document_service import DocumentService, document_to_dict
from ..email_composer import EmailComposer
from ..models import DocumentType
from ..pdf_generator import generate_document_pdf
from ..pricing_settings import load_pricing_config

logger = logging.getLogger(__name__)


def make_router(doc_type: DocumentType) -> APIRouter:
    label = doc_type.value
    router = APIRouter(prefix=f"/{label}s", tags=[f"{label}s"])

    def get_service(db: Session = Depends(get_db)) -> DocumentService:
        return DocumentService(db, doc_type)

    @router.post("/")
    def create_document(data: schemas.DocumentCreate, service: DocumentService = Depends(get_service)):
        doc = service.create(data.model_dump())
        return document_to_dict(doc)

    @router.get("/")
    def list_documents(
        status: Optional[str] = None,
        customer_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
        service: DocumentService = Depends(get_service),
    ):
        docs = service.list_documents(status=status, customer_id=customer_id, skip=skip, limit=limit)
        return [document_to_dict(d) for d in docs]

    @router.get("/export.csv")
    def export_csv(service: DocumentService = Depends(get_service)):
        return Response(
            content=service.export_csv(),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{label}s.csv"'},
        )

    @router.get("/{document_id}")
    def get_document(document_id: int, service: DocumentService = Depends(get_service)):
        return document_to_dict(service.get(document_id))

    @router.patch("/{document_id}")
    def update_document(document_id: int, update: schemas.DocumentUpdate,
                        service: DocumentService = Depends(get_service)):
        doc = service.update(document_id, update.model_dump(exclude_unset=True))
        return document_to_dict(doc)

    @router.delete("/{document_id}")
    def delete_document(document_id: int, service: DocumentService = Depends(get_service)):
        service.delete(document_id)
        return {"ok": True, "deleted": document_id}

    # --- Line items ---

    @router.post("/{document_id}/line-items")
    def add_line_item(document_id: int, item: schemas.LineItemCreate,
                      service: DocumentService = Depends(get_service)):
        doc = service.add_line_item(document_id, item.model_dump())
        return document_to_dict(doc)

    @router.post("/{document_id}/line-items/calculated")
    def add_calculated_item(document_id: int, request: schemas.CalculatedItemCreate,
                            service: DocumentService = Depends(get_service)):
        if not has_calculator(request.calculator):
            raise HTTPException(status_code=404, detail=f"Unknown calculator: {request.calculator}")
        calculator = get_calculator(request.calculator, load_pricing_config(service.db))
        calculation = calculator.calculate(request.fields)
        doc = service.add_calculated_item(document_id, calculation, request.description)
        return document_to_dict(doc)

    @router.delete("/{document_id}/line-items/{item_id}")
    def remove_line_item(document_id: int, item_id: int, service: DocumentService = Depends(get_service)):
        doc = service.remove_line_item(document_id, item_id)
        return document_to_dict(doc)

    # --- Output ---

    @router.get("/{document_id}/pdf")
    def download_pdf(document_id: int, service: DocumentService = Depends(get_service)):
        """Returns: application/pdf"""
        doc = service.get(document_id)
        data = document_to_dict(doc)
        pdf_bytes = generate_document_pdf(data, settings.business_profile(data["business_type"]))
        return Response(
            content=pdf_bytes,
            media_type="application/pdf",
            headers={"Content-Disposition": f'attachment; filename="{doc.number}.pdf"'},
        )

    @router.post("/{document_id}/email")
    def compose_email(document_id: int, request: schemas.EmailCompose,
                      service: DocumentService = Depends(get_service)):
        doc = service.get(document_id)
        data = document_to_dict(doc)
        composed = EmailComposer().compose(
            data,
            settings.business_profile(data["business_type"]),
            template=request.template,
            to=request.to,
            subject=request.subject,
            message=request.message,
        )
        service.record_email(doc, composed, mark_sent=request.mark_sent)
        composed["status"] = doc.status.value
        return composed

    @router.get("/{document_id}/emails", response_model=List[schemas.EmailLog])
    def email_history(document_id: int, service: DocumentService = Depends(get_service)):
        doc = service.get(document_id)
        return sorted(doc.email_logs, key=lambda log: log.id, reverse=True)

    if doc_type == DocumentType.ESTIMATE:

        @router.post("/{document_id}/signature")
        def sign_estimate(document_id: int, signature: schemas.SignatureCreate,
                          service: DocumentService = Depends(get_service)):
            doc = service.sign(document_id, signature.signer_name, signature.signature_data)
            return document_to_dict(doc)

        @router.delete("/{document_id}/signature")
        def clear_signature(document_id: int, service: DocumentService = Depends(get_service)):
            return document_to_dict(service.clear_signature(document_id))

        @router.post("/{document_id}/convert")
        def convert_to_invoice(document_id: int, service: DocumentService = Depends(get_service)):
            invoice = service.convert_to_invoice(document_id)
            return document_to_dict(invoice)

    return router


invoices_router = make_router(DocumentType.INVOICE)
estimates_router = make_router(DocumentType.ESTIMATE)

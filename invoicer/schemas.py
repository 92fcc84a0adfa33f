from pydantic import BaseModel
from typing import Optional, List, Any, Dict
from datetime import date, datetime
from .models import BusinessType, DocumentStatus

class CustomerBase(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None

class CustomerCreate(CustomerBase):
    pass

class CustomerUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None

class Customer(CustomerBase):
    id: int
    created_at: datetime
    class Config:
        from_attributes = True

class LineItemCreate(BaseModel):
    description: str
    quantity: float = 1.0
    unit: str = "job"
    unit_price: float = 0.0
    service_type: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

class DocumentCreate(BaseModel):
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    business_type: BusinessType = BusinessType.CONCRETE
    issue_date: Optional[date] = None
    notes: Optional[str] = None
    status: Optional[DocumentStatus] = None
    line_items: List[LineItemCreate] = []

class DocumentUpdate(BaseModel):
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    business_type: Optional[BusinessType] = None
    issue_date: Optional[date] = None
    notes: Optional[str] = None
    status: Optional[DocumentStatus] = None

class CalculatedItemCreate(BaseModel):
    """Run a calculator and append its suggested line item."""
    calculator: str
    fields: Dict[str, Any]
    description: Optional[str] = None

class SignatureCreate(BaseModel):
    signer_name: str
    signature_data: str  # data:image/png;base64,...

class EmailCompose(BaseModel):
    template: Optional[str] = None
    to: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None
    mark_sent: bool = False

class EmailLog(BaseModel):
    id: int
    recipient: Optional[str] = None
    subject: str
    template: str
    action: str
    created_at: datetime
    class Config:
        from_attributes = True

class BackupImport(BaseModel):
    replace: bool = False
    data: Dict[str, Any]

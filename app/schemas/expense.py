"""
Pydantic v2 schemas for expenses.

``status`` and ``createdAt`` are never accepted from the client: every
submission starts as PENDING with a server timestamp.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Literal

from pydantic import ConfigDict, Field

from app.schemas.common import CamelModel
from app.services.budget_engine import ExpenseDraft
from app.services.ledger_store import Attachment, ExpenseRecord, LineItem


class LineItemSchema(CamelModel):
    description: str = Field(default="", max_length=500)
    quantity: Decimal = Field(default=Decimal("1"), ge=0)
    amount: Decimal = Field(..., ge=0)


class AttachmentSchema(CamelModel):
    file_name: str
    file_type: str
    data: str = Field(..., description="Base64-encoded document payload")


class ExpenseCreate(CamelModel):
    """Body of ``POST /api/expenses``.

    The engine trusts ``total`` for budget consumption; it is not
    recomputed from the line items.
    """

    responsibility_id: int
    vendor: str = Field(..., min_length=1, max_length=300)
    invoice_number: str = Field(default="", max_length=100)
    date: dt.date
    line_items: list[LineItemSchema] = Field(default_factory=list)
    tax: Decimal = Field(default=Decimal("0"), ge=0)
    total: Decimal = Field(..., ge=0)
    category: str = Field(default="", max_length=100)
    notes: str = ""
    attachments: list[AttachmentSchema] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "responsibilityId": 1,
                "vendor": "Office Depot",
                "invoiceNumber": "INV-1042",
                "date": "2024-07-15",
                "lineItems": [{"description": "Printer paper", "quantity": 10, "amount": 45.5}],
                "tax": 4.5,
                "total": 50.0,
                "category": "Office Supplies",
                "notes": "",
                "attachments": [],
            }
        }
    )

    def to_draft(self) -> ExpenseDraft:
        return ExpenseDraft(
            responsibility_id=self.responsibility_id,
            vendor=self.vendor,
            total=self.total,
            date=self.date,
            invoice_number=self.invoice_number,
            line_items=[
                LineItem(description=i.description, quantity=i.quantity, amount=i.amount)
                for i in self.line_items
            ],
            tax=self.tax,
            category=self.category,
            notes=self.notes,
            attachments=[
                Attachment(file_name=a.file_name, file_type=a.file_type, data=a.data)
                for a in self.attachments
            ],
        )


class ExpenseStatusUpdate(CamelModel):
    status: Literal["APPROVED", "REJECTED"]


class LineItemResponse(CamelModel):
    description: str
    quantity: float
    amount: float


class ExpenseResponse(CamelModel):
    id: int
    vendor: str
    invoice_number: str
    date: dt.date
    created_at: dt.datetime | None
    line_items: list[LineItemResponse]
    tax: float
    total: float
    category: str
    notes: str
    status: str
    submitted_by: int
    responsibility_id: int
    attachments: list[AttachmentSchema]

    @classmethod
    def from_record(cls, record: ExpenseRecord) -> ExpenseResponse:
        return cls(
            id=record.id,
            vendor=record.vendor,
            invoice_number=record.invoice_number,
            date=record.date,
            created_at=record.created_at,
            line_items=[
                LineItemResponse(
                    description=i.description,
                    quantity=float(i.quantity),
                    amount=float(i.amount),
                )
                for i in record.line_items
            ],
            tax=float(record.tax),
            total=float(record.total),
            category=record.category,
            notes=record.notes,
            status=record.status.value,
            submitted_by=record.submitted_by,
            responsibility_id=record.responsibility_id,
            attachments=[
                AttachmentSchema(file_name=a.file_name, file_type=a.file_type, data=a.data)
                for a in record.attachments
            ],
        )

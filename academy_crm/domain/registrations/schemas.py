"""Registration schemas - Pydantic models for validation"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...models import REGISTRATION_STATUSES
from ...shared.validators import validate_choice

PAYMENT_STATUSES = ("unpaid", "partial", "paid")


class RegistrationCreate(BaseModel):
    studentId: str
    registrationDate: Optional[date] = None
    status: str = "registered"
    amount: Optional[Decimal] = Field(None, ge=0)
    paymentStatus: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return validate_choice(v, REGISTRATION_STATUSES, "status")

    @field_validator("paymentStatus")
    @classmethod
    def validate_payment_status(cls, v):
        return validate_choice(v, PAYMENT_STATUSES, "paymentStatus")


class RegistrationUpdate(BaseModel):
    status: Optional[str] = None
    amount: Optional[Decimal] = Field(None, ge=0)
    paymentStatus: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return validate_choice(v, REGISTRATION_STATUSES, "status")

    @field_validator("paymentStatus")
    @classmethod
    def validate_payment_status(cls, v):
        return validate_choice(v, PAYMENT_STATUSES, "paymentStatus")


class RegistrationResponse(BaseModel):
    id: str
    studentId: str
    studentName: Optional[str] = None
    cycleId: str
    registrationDate: Optional[date] = None
    status: str
    amount: Optional[Decimal] = None
    paymentStatus: Optional[str] = None
    cancellationDate: Optional[date] = None
    notes: Optional[str] = None

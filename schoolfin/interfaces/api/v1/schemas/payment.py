from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from schoolfin.domain.fee_enums import PaymentMethod
from schoolfin.interfaces.api.v1.schemas.student_fee import StudentFeeResponse


class PaymentCreate(BaseModel):
    student_fee_id: int
    amount_minor: int = Field(gt=0)
    method: PaymentMethod
    reference: str | None = Field(default=None, max_length=100)
    client_request_id: str | None = Field(default=None, max_length=100)
    created_from_offline: bool = False
    paid_at: datetime | None = None


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_fee_id: int
    amount_minor: int
    method: PaymentMethod
    reference: str | None
    paid_at: datetime
    client_request_id: str | None
    created_from_offline: bool
    created_at: datetime


class PaymentApplicationResponse(BaseModel):
    payment: PaymentResponse
    student_fee: StudentFeeResponse
    replayed: bool


class PaymentListResponse(BaseModel):
    items: list[PaymentResponse]

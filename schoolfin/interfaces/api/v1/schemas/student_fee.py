from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from schoolfin.domain.fee_enums import FeeStatus, Term


class StudentFeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    school_id: int
    student_id: int
    category_id: int
    source_structure_line_id: int | None
    term: Term
    academic_year: int
    base_amount_minor: int | None
    amount_due_minor: int
    amount_paid_minor: int
    locked: bool
    status: FeeStatus
    discount_reason: str | None
    updated_at: datetime


class StudentFeeListResponse(BaseModel):
    items: list[StudentFeeResponse]


class StudentFeeAdjust(BaseModel):
    new_amount_due_minor: int = Field(ge=0)
    new_amount_paid_minor: int | None = Field(default=None, ge=0)
    locked: bool = True
    reason: str | None = Field(default=None, max_length=500)


class StudentFeeSummaryResponse(BaseModel):
    student_id: int
    total_due_minor: int
    total_paid_minor: int
    outstanding_minor: int
    credit_minor: int
    unpaid_count: int
    partially_paid_count: int
    paid_count: int
    locked_count: int

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from schoolfin.domain.fee_enums import ApplyScope, Term


class FeeStructureLineCreate(BaseModel):
    class_id: int
    category_id: int
    term: Term | None = None
    academic_year: int = Field(ge=2000, le=3000)
    amount_minor: int = Field(ge=0)
    is_active: bool = True


class FeeStructureLineUpdate(BaseModel):
    amount_minor: int | None = Field(default=None, ge=0)
    is_active: bool | None = None
    reason: str | None = Field(default=None, max_length=500)


class FeeStructureLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    school_id: int
    class_id: int
    category_id: int
    term: Term | None
    academic_year: int
    amount_minor: int
    is_active: bool
    created_at: datetime
    updated_at: datetime


class FeeStructureLineListResponse(BaseModel):
    items: list[FeeStructureLineResponse]


class FeeStructureApplyRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    class_id: int = Field(gt=0)
    academic_year: int = Field(ge=2000, le=3000)
    scope: ApplyScope = ApplyScope.all
    term: Term | None = None
    reason: str | None = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def term_required_for_term_scope(self) -> "FeeStructureApplyRequest":
        if self.scope == ApplyScope.term and self.term is None:
            raise ValueError("term is required when scope=term")
        return self


class FeeStructurePreviewLine(BaseModel):
    student_id: int
    category_id: int
    term: Term
    academic_year: int
    amount_minor: int
    source_structure_line_id: int


class FeeStructurePreviewResponse(BaseModel):
    items: list[FeeStructurePreviewLine]
    count: int


class FeeStructureApplyResponse(BaseModel):
    created: int
    updated: int
    locked: int
    unchanged: int


class FeeStructureApplyQueuedResponse(BaseModel):
    task_id: str

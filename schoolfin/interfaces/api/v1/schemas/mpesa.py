from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from schoolfin.domain.mpesa_enums import MpesaReviewReason, MpesaTransactionStatus


class MpesaStkRequestCreate(BaseModel):
    student_fee_id: int
    phone_number: str = Field(min_length=9, max_length=20)
    amount_minor: int = Field(gt=0)
    checkout_request_id: str = Field(min_length=1, max_length=100)
    merchant_request_id: str | None = Field(default=None, max_length=100)


class MpesaTransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    school_id: int | None
    student_fee_id: int | None
    payment_id: int | None
    phone_number: str
    amount_minor: int
    status: MpesaTransactionStatus
    review_reason: MpesaReviewReason | None
    checkout_request_id: str | None
    mpesa_receipt_number: str | None
    created_at: datetime


class MpesaReviewListResponse(BaseModel):
    items: list[MpesaTransactionResponse]


class _ProviderModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class StkCallbackItem(_ProviderModel):
    name: str = Field(alias="Name")
    value: str | int | float | None = Field(default=None, alias="Value")


class StkCallbackMetadata(_ProviderModel):
    items: list[StkCallbackItem] = Field(default_factory=list, alias="Item")


class StkCallback(_ProviderModel):
    merchant_request_id: str = Field(alias="MerchantRequestID")
    checkout_request_id: str = Field(alias="CheckoutRequestID")
    result_code: int = Field(alias="ResultCode")
    result_desc: str = Field(alias="ResultDesc")
    callback_metadata: StkCallbackMetadata | None = Field(default=None, alias="CallbackMetadata")

    def metadata_value(self, name: str) -> str | int | float | None:
        if self.callback_metadata is None:
            return None
        for item in self.callback_metadata.items:
            if item.name == name:
                return item.value
        return None


class StkCallbackBody(_ProviderModel):
    stk_callback: StkCallback = Field(alias="stkCallback")


class StkCallbackEnvelope(_ProviderModel):
    body: StkCallbackBody = Field(alias="Body")


class C2bConfirmation(_ProviderModel):
    trans_id: str = Field(alias="TransID", min_length=1)
    trans_amount: Decimal = Field(alias="TransAmount")
    business_short_code: str = Field(alias="BusinessShortCode")
    bill_ref_number: str | None = Field(default=None, alias="BillRefNumber")
    msisdn: str | None = Field(default=None, alias="MSISDN")
    trans_time: str | None = Field(default=None, alias="TransTime")
    first_name: str | None = Field(default=None, alias="FirstName")
    middle_name: str | None = Field(default=None, alias="MiddleName")
    last_name: str | None = Field(default=None, alias="LastName")


class MpesaCallbackAck(BaseModel):
    ok: bool
    status: MpesaTransactionStatus

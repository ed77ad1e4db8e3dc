from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

PaymentStatus = Literal["pending", "success", "failed"]


class StkPushRequest(BaseModel):
    phone: str = ""
    amount: Union[int, float, str] = 0


class StkPushResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    checkout_request_id: str = Field(alias="checkoutRequestId")
    merchant_request_id: Optional[str] = Field(default=None, alias="merchantRequestId")
    customer_message: Optional[str] = Field(default=None, alias="customerMessage")


class PaymentRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    checkout_request_id: str = Field(alias="checkoutRequestId")
    merchant_request_id: Optional[str] = Field(default=None, alias="merchantRequestId")
    user_id: str = Field(alias="userId")
    phone: str
    amount: int
    status: PaymentStatus = "pending"
    result_code: Optional[int] = Field(default=None, alias="resultCode")
    result_desc: Optional[str] = Field(default=None, alias="resultDesc")
    receipt: Optional[str] = None
    created_at: int = Field(alias="createdAt")
    updated_at: int = Field(alias="updatedAt")


CALLBACK_ACK: Dict[str, Any] = {"ResultCode": 0, "ResultDesc": "Accepted"}


__all__ = [
    "CALLBACK_ACK",
    "PaymentRecord",
    "PaymentStatus",
    "StkPushRequest",
    "StkPushResponse",
]

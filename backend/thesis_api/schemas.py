"""Pydantic request schemas used by the API.

Schemas keep API input shapes stable and validate every body before it
reaches a service. Field names are snake_case; the camelCase spelling
used by the web client (`packId`, `firstName`, ...) is accepted too.
"""

import re
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .models import DocumentStatus, EventType, MemoirePhase

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class InputModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class RegisterIn(InputModel):
    """Payload for account registration."""
    email: str
    password: str = Field(min_length=6)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    phone: Optional[str] = None
    role: Optional[str] = None
    university: Optional[str] = None
    field: Optional[str] = None
    pack_id: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _check_email(cls, v: str) -> str:
        if not _EMAIL_RE.match(v):
            raise ValueError("invalid email address")
        return v.lower()


class LoginIn(InputModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def _lower(cls, v: str) -> str:
        return v.lower()


class RefreshIn(InputModel):
    refresh_token: str


class ChangePasswordIn(InputModel):
    current_password: str
    new_password: str = Field(min_length=6)


class TokenOut(BaseModel):
    """Authentication response containing a token pair."""
    token: str
    refresh_token: str


class ProfileUpdateIn(InputModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    university: Optional[str] = None
    field: Optional[str] = None


class AvatarIn(InputModel):
    avatar: str = Field(min_length=1)


class AdminUserUpdateIn(ProfileUpdateIn):
    role: Optional[str] = None
    is_active: Optional[bool] = None


class AssignCoachIn(InputModel):
    coach_id: str


class PackIn(InputModel):
    """Pack creation payload; installments come in pairs summing to price."""
    name: str = Field(min_length=1)
    description: Optional[str] = None
    price: int = Field(gt=0)
    installment1: Optional[int] = Field(default=None, gt=0)
    installment2: Optional[int] = Field(default=None, gt=0)
    features: List[str] = Field(default_factory=list)
    is_active: bool = True
    sort_order: int = 0

    @model_validator(mode="after")
    def _check_installments(self):
        check_installments(self.price, self.installment1, self.installment2)
        return self


class PackUpdateIn(InputModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    price: Optional[int] = Field(default=None, gt=0)
    installment1: Optional[int] = Field(default=None, gt=0)
    installment2: Optional[int] = Field(default=None, gt=0)
    features: Optional[List[str]] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


def check_installments(price: int, installment1: Optional[int], installment2: Optional[int]) -> None:
    """Raise ValueError unless the two-tranche plan is absent or consistent."""
    if installment1 is None and installment2 is None:
        return
    if installment1 is None or installment2 is None:
        raise ValueError("installment1 and installment2 must be provided together")
    if installment1 + installment2 != price:
        raise ValueError("installment1 + installment2 must equal price")


class SubscribeIn(InputModel):
    pack_id: str = Field(min_length=1)


class PaymentNotificationIn(InputModel):
    """A student's claim that money was sent (mobile money reference etc.)."""
    method: str = Field(min_length=1)
    reference: Optional[str] = None
    amount: int = Field(gt=0)


class ConfirmedPaymentIn(InputModel):
    amount: int = Field(gt=0)


class SubscriptionStatusIn(InputModel):
    status: Literal["CANCELLED", "EXPIRED"]


class MemoireUpdateIn(InputModel):
    title: Optional[str] = Field(default=None, min_length=1)
    phase: Optional[MemoirePhase] = None
    progress_percent: Optional[int] = Field(default=None, ge=0, le=100)
    notes: Optional[str] = None


class DocumentReviewIn(InputModel):
    status: DocumentStatus
    feedback: Optional[str] = None


class MessageIn(InputModel):
    receiver_id: str
    content: str = Field(min_length=1, max_length=5000)


class EventIn(InputModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    date: datetime
    type: EventType = EventType.REMINDER


class CorrectionIn(InputModel):
    text: str = Field(min_length=1, max_length=20000)


class ExportIn(InputModel):
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)

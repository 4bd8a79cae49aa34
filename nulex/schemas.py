"""Request and response schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: str = Field(..., max_length=255)
    phone: Optional[str] = Field(None, max_length=20)
    referrer_username: Optional[str] = None


class SubmitTaskRequest(BaseModel):
    screenshot_url: Optional[str] = None
    answer: Optional[str] = None


class ReviewTaskRequest(BaseModel):
    decision: Literal["approve", "reject"]
    notes: Optional[str] = None


class TaskCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    task_type: Optional[str] = None
    reward: Decimal = Field(..., gt=0)
    duration_minutes: Optional[int] = Field(None, ge=0)
    url: Optional[str] = None
    max_completions: int = Field(..., gt=0)
    requires_screenshot: bool = False
    requires_question: bool = False
    verification_question: Optional[str] = None
    is_active: bool = True


class TaskUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    task_type: Optional[str] = None
    reward: Optional[Decimal] = Field(None, gt=0)
    duration_minutes: Optional[int] = Field(None, ge=0)
    url: Optional[str] = None
    max_completions: Optional[int] = Field(None, gt=0)
    requires_screenshot: Optional[bool] = None
    requires_question: Optional[bool] = None
    verification_question: Optional[str] = None
    is_active: Optional[bool] = None


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    task_type: Optional[str] = None
    reward: Decimal
    duration_minutes: Optional[int] = None
    url: Optional[str] = None
    max_completions: int
    current_completions: int
    requires_screenshot: bool
    requires_question: bool
    verification_question: Optional[str] = None
    is_active: bool


class InitializePaymentRequest(BaseModel):
    package_type: Literal["knight", "elite"]


class AdminVerifyPackageRequest(BaseModel):
    status: Literal["success", "failed"]


class BankValidationRequest(BaseModel):
    account_number: str = Field(..., pattern=r"^\d{10}$")
    bank_code: str = Field(..., min_length=1, max_length=10)


class WithdrawalCreateRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    balance_type: Literal["task", "affiliate"]
    bank_name: str = Field(..., min_length=1, max_length=100)
    bank_code: str = Field(..., min_length=1, max_length=10)
    account_number: str = Field(..., pattern=r"^\d{10}$", description="10-digit NUBAN")
    account_name: str = Field(..., min_length=1, max_length=255)


class WithdrawalStatusRequest(BaseModel):
    status: Literal["approved", "rejected"]
    notes: Optional[str] = None


class WithdrawalSettleRequest(BaseModel):
    recipient_code: Optional[str] = None
    transfer_code: Optional[str] = None


class PortalUpdateRequest(BaseModel):
    is_open: bool
    open_until: Optional[datetime] = None
    notes: Optional[str] = None


class BlockUserRequest(BaseModel):
    blocked: bool


class SettingsUpdateRequest(BaseModel):
    settings: dict = Field(..., description="setting_key -> value")


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: str
    amount: Decimal
    balance_type: str
    description: Optional[str] = None
    status: str
    reference: Optional[str] = None
    created_at: Optional[datetime] = None


class WalletResponse(BaseModel):
    task_balance: Decimal
    affiliate_balance: Decimal
    package_type: str
    welcome_bonus_claimed: bool
    recent_transactions: List[TransactionResponse] = []

from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictInt, StrictStr, field_validator
from pydantic.alias_generators import to_camel

# ============================================================================
# ENUMS
# ============================================================================

class UserRole(str, Enum):
    FARMER = "farmer"
    BUYER = "buyer"

class ProductStatus(str, Enum):
    AVAILABLE = "available"
    PENDING = "pending"
    SOLD = "sold"

class ContractStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"

# Targets a farmer may move a pending contract to.
CONTRACT_DECISIONS = (ContractStatus.ACCEPTED.value, ContractStatus.REJECTED.value)

# ============================================================================
# BASE MODELS
# ============================================================================

class CamelModel(BaseModel):
    """Snake_case attributes in Python, camelCase names on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class RequestModel(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


def _decimal_text(value: str) -> str:
    """Reject prices that are not plain non-negative decimals.

    The value is kept as text so it never passes through a float.
    """
    try:
        amount = Decimal(value.strip())
    except InvalidOperation:
        raise ValueError("must be a decimal number such as '10.00'") from None
    if not amount.is_finite() or amount < 0:
        raise ValueError("must be a non-negative decimal number")
    return value.strip()

# ============================================================================
# REQUEST MODELS
# ============================================================================

# Auth
class RegisterRequest(RequestModel):
    username: StrictStr = Field(min_length=1)
    password: StrictStr = Field(min_length=1)
    role: UserRole
    full_name: StrictStr = Field(min_length=1)
    email: EmailStr
    phone_number: Optional[StrictStr] = None

class LoginRequest(RequestModel):
    username: StrictStr
    password: StrictStr

# Products
class CreateProductRequest(RequestModel):
    name: StrictStr = Field(min_length=1)
    description: StrictStr
    quantity: StrictStr = Field(min_length=1)
    unit: StrictStr = Field(min_length=1)
    price: StrictStr

    @field_validator("price")
    @classmethod
    def check_price(cls, value: str) -> str:
        return _decimal_text(value)

# Contracts
class CreateContractRequest(RequestModel):
    product_id: StrictInt
    quantity: StrictStr = Field(min_length=1)
    price: StrictStr
    delivery_date: datetime

    @field_validator("price")
    @classmethod
    def check_price(cls, value: str) -> str:
        return _decimal_text(value)

class UpdateContractStatusRequest(CamelModel):
    # Left unchecked here: the store validates the target only after the
    # existence, ownership and state checks.
    status: Any = None

# Messages
class SendMessageRequest(RequestModel):
    receiver_id: StrictInt
    content: StrictStr = Field(min_length=1)

# ============================================================================
# RECORDS (stored by the storage layer, returned by the API)
# ============================================================================

class UserResponse(CamelModel):
    id: int
    username: str
    role: UserRole
    full_name: str
    email: str
    phone_number: Optional[str] = None

class User(UserResponse):
    """Stored user.  ``password`` is the passlib hash and never leaves the API."""

    password: str

    def public(self) -> UserResponse:
        return UserResponse.model_validate(self.model_dump(exclude={"password"}))

class Product(CamelModel):
    id: int
    farmer_id: int
    name: str
    description: str
    quantity: str
    unit: str
    price: str
    status: ProductStatus
    created_at: datetime

class Contract(CamelModel):
    id: int
    buyer_id: int
    farmer_id: int
    product_id: int
    quantity: str
    price: str
    status: ContractStatus
    delivery_date: datetime
    created_at: datetime

class Message(CamelModel):
    id: int
    sender_id: int
    receiver_id: int
    content: str
    created_at: datetime

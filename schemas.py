import datetime as dt
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth import BCRYPT_MAX_BYTES
from models import (
    DEFAULT_CATEGORY_COLOR,
    DEFAULT_INCOME_TAX_RATE,
    DEFAULT_VAT_RATE,
    CategoryType,
    TransactionType,
    UserType,
)

COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class SignupIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, max_length=120)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    user_type: UserType
    organization_name: Optional[str] = Field(default=None, max_length=200)
    organization_id: Optional[str] = Field(default=None, max_length=100)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("name", "organization_name", "organization_id", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        return _blank_to_none(value)

    @field_validator("password")
    @classmethod
    def password_fits_hash(cls, value: str) -> str:
        if len(value.encode("utf-8")) > BCRYPT_MAX_BYTES:
            raise ValueError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes")
        return value


class LoginIn(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: Optional[str]
    email: str
    user_type: UserType
    organization_name: Optional[str]
    organization_id: Optional[str]
    created_at: dt.datetime


class CategoryIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType
    color: str = Field(default=DEFAULT_CATEGORY_COLOR, pattern=COLOR_PATTERN)


class CategoryUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)


class CategoryRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    color: str


class CategoryOut(CategoryRef):
    user_id: int
    type: CategoryType
    created_at: dt.datetime


class TransactionUpdate(BaseModel):
    """Mutable transaction fields; an update replaces all of them."""

    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    type: TransactionType
    date: dt.date
    category_id: Optional[int] = None
    account: Optional[str] = Field(default=None, max_length=100)
    document_no: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)

    @field_validator(
        "category_id", "account", "document_no", "description", mode="before"
    )
    @classmethod
    def blank_to_none(cls, value):
        return _blank_to_none(value)


class TransactionIn(TransactionUpdate):
    user_id: int


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    amount: Decimal
    type: TransactionType
    date: dt.date
    category_id: Optional[int] = None
    account: Optional[str] = None
    document_no: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None
    category: Optional[CategoryRef] = None


class CompanySettingsIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    company_name: str = Field(..., min_length=1, max_length=200)
    registration_number: str = Field(..., min_length=1, max_length=50)
    tax_number: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = None
    phone: Optional[str] = Field(default=None, max_length=50)
    email: Optional[str] = Field(default=None, max_length=255)
    vat_registered: bool = False
    vat_rate: Decimal = Field(default=DEFAULT_VAT_RATE, ge=0, le=100)
    income_tax_rate: Decimal = Field(default=DEFAULT_INCOME_TAX_RATE, ge=0, le=100)
    ebarimt_enabled: bool = False
    ebarimt_test_mode: bool = True
    ebarimt_api_key: Optional[str] = Field(default=None, max_length=200)

    @field_validator(
        "tax_number", "address", "phone", "email", "ebarimt_api_key", mode="before"
    )
    @classmethod
    def blank_to_none(cls, value):
        return _blank_to_none(value)


class CompanySettingsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    company_name: str
    registration_number: str
    tax_number: Optional[str]
    address: Optional[str]
    phone: Optional[str]
    email: Optional[str]
    vat_registered: bool
    vat_rate: Decimal
    income_tax_rate: Decimal
    ebarimt_enabled: bool
    ebarimt_test_mode: bool
    updated_at: dt.datetime


class TaxRequest(BaseModel):
    amount: Decimal = Field(..., ge=0)
    type: TransactionType
    category_id: Optional[int] = None

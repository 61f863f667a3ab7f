"""Form and record schemas.

Form models validate what the pages submit; record models describe the
documents written to the data store (camelCase on the wire).
"""
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from core.config import APP_TZ

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
CONTACT_PATTERN = r"^\+?[0-9\s-]{10,15}$"


def format_validation_error(exc: ValidationError) -> str:
    """Join pydantic errors into one readable line per field."""
    lines = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "__root__")
        msg = err.get("msg", "Invalid value")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        lines.append(f"{loc}: {msg}" if loc else msg)
    return "\n".join(lines)


def _today() -> date:
    return datetime.now(APP_TZ).date()


def _strip(value):
    return value.strip() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Forms
# ---------------------------------------------------------------------------

class ProductForm(BaseModel):
    name: str = Field(..., min_length=3, max_length=120)
    sku: str = Field(..., min_length=1, max_length=64)
    description: str = ""
    category: str = ""
    current_stock: int = Field(default=0, ge=0)
    unit_price: Optional[float] = Field(default=None, ge=0)
    supplier: str = ""

    strip_text = field_validator("name", "sku", "description", "category", "supplier", mode="before")(_strip)


class RestockForm(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)
    received_at: date = Field(default_factory=_today)
    purchase_order: str = ""
    supplier: str = ""

    strip_text = field_validator("product_id", "purchase_order", "supplier", mode="before")(_strip)

    @field_validator("received_at")
    @classmethod
    def not_in_future(cls, value: date) -> date:
        if value > _today():
            raise ValueError("Date received cannot be in the future.")
        return value


class GatePassLine(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)


class DispatchForm(BaseModel):
    items: List[GatePassLine] = Field(..., min_length=1)
    destination: str = Field(..., min_length=3, max_length=200)
    reason: str = Field(..., min_length=3, max_length=500)
    dispatched_at: date = Field(default_factory=_today)

    strip_text = field_validator("destination", "reason", mode="before")(_strip)

    @field_validator("dispatched_at")
    @classmethod
    def not_in_future(cls, value: date) -> date:
        if value > _today():
            raise ValueError("Date of dispatch cannot be in the future.")
        return value


class ProfileForm(BaseModel):
    shop_name: str = Field(..., min_length=2, max_length=100)
    contact_no: str = Field(default="", pattern=rf"{CONTACT_PATTERN}|^$")
    address: str = Field(default="", max_length=250)
    employees: List[str] = Field(default_factory=list)

    strip_text = field_validator("shop_name", "contact_no", "address", mode="before")(_strip)

    @field_validator("employees", mode="before")
    @classmethod
    def clean_employees(cls, value):
        if isinstance(value, str):
            value = value.splitlines()
        cleaned, seen = [], set()
        for name in value or []:
            name = str(name).strip()
            if name and name.casefold() not in seen:
                seen.add(name.casefold())
                cleaned.append(name)
        return cleaned


class LoginForm(BaseModel):
    email: str = Field(..., pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=1)

    strip_email = field_validator("email", mode="before")(_strip)


class SignupForm(BaseModel):
    email: str = Field(..., pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=6)
    confirm_password: str

    strip_email = field_validator("email", mode="before")(_strip)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords don't match.")
        return self


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

class Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_store(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"id"})


class Product(Record):
    id: str = ""
    name: str
    sku: str
    description: str = ""
    category: str = ""
    current_stock: int = 0
    unit_price: Optional[float] = None
    supplier: str = ""
    image_url: str = ""
    image_path: str = ""
    created_at: str = ""
    updated_at: str = ""
    user_id: str = ""


class IncomingLog(Record):
    id: str = ""
    product_id: str
    product_name: str
    product_sku: str = ""
    quantity: int
    received_at: str
    purchase_order: str = ""
    supplier: str = ""
    timestamp: str
    user_id: str
    type: str = "incoming"


class GatePassItem(Record):
    product_id: str
    name: str
    sku: str = ""
    quantity: int
    image_url: str = ""


class GatePass(Record):
    id: str = ""
    items: List[GatePassItem]
    destination: str
    reason: str
    date: str
    total_quantity: int
    user_id: str
    user_name: str = ""
    user_email: str = ""
    created_at: str
    qr_code_data: str
    gate_pass_number: int = 0
    generated_pass_content: Optional[str] = None


class UserProfileData(Record):
    shop_name: str = ""
    contact_no: str = ""
    address: str = ""
    employees: List[str] = Field(default_factory=list)

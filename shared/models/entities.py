"""Business entities indexed by the RAG subsystem.

Each supported entity type has its own model; ``BusinessEntity`` is the closed
tagged union over all of them, discriminated by ``entity_type``. The business
data provider yields raw dicts; they are validated into these models before
being turned into chunks.
"""

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, field_validator


class EntityType(str, Enum):
    """Closed set of indexed entity types. Values are the wire names."""

    SITE = "site"
    CLIENT = "client"
    ORDER = "order"
    PROGRESS_STATEMENT = "progress-statement"
    SUBCONTRACTOR = "subcontractor"
    DOCUMENT = "document"
    NOTE = "note"
    REMARK = "remark"
    MATERIAL = "material"
    RACK = "rack"
    MACHINE = "machine"
    EXPENSE = "expense"
    TASK = "task"
    CLIENT_CHOICE = "client-choice"


class EntityBase(BaseModel):
    """Fields shared by every business entity."""

    id: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return str(value)
        # fractional floats fall through and fail str validation
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return value

    @field_validator("id")
    @classmethod
    def _require_id(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("id must not be empty")
        return value


class SiteScoped(EntityBase):
    """Entities attached to a construction site."""

    site_id: str | None = None
    site_name: str | None = None

    @field_validator("site_id", mode="before")
    @classmethod
    def _coerce_site_id(cls, value):
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class SiteEntity(EntityBase):
    entity_type: Literal["site"] = "site"
    reference: str
    name: str
    address: str | None = None
    client_name: str | None = None
    status: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    budget: float | None = None
    description: str | None = None


class ClientEntity(EntityBase):
    entity_type: Literal["client"] = "client"
    name: str
    email: str | None = None
    address: str | None = None
    phone: str | None = None


class OrderEntity(SiteScoped):
    entity_type: Literal["order"] = "order"
    reference: str
    name: str
    status: str | None = None
    ordered_at: date | None = None
    amount_excl_vat: float = 0.0
    amount_incl_vat: float = 0.0
    client_name: str | None = None


class ProgressStatementEntity(SiteScoped):
    entity_type: Literal["progress-statement"] = "progress-statement"
    reference: str
    percentage: float
    description: str | None = None
    statement_date: date | None = None
    client_name: str | None = None


class SubcontractorEntity(EntityBase):
    entity_type: Literal["subcontractor"] = "subcontractor"
    name: str
    email: str | None = None
    contact: str | None = None
    address: str | None = None
    phone: str | None = None
    vat_number: str | None = None
    active: bool = True


class DocumentEntity(SiteScoped):
    entity_type: Literal["document"] = "document"
    name: str
    kind: str | None = None
    description: str | None = None
    url: str | None = None


class NoteEntity(SiteScoped):
    entity_type: Literal["note"] = "note"
    content: str
    author: str | None = None


class RemarkEntity(SiteScoped):
    entity_type: Literal["remark"] = "remark"
    description: str
    location: str | None = None
    resolved: bool = False


class MaterialEntity(EntityBase):
    entity_type: Literal["material"] = "material"
    name: str
    description: str | None = None
    quantity: float = 0
    qr_code: str | None = None
    rack_name: str | None = None
    rack_location: str | None = None
    row: int | None = None
    column: int | None = None


class RackEntity(EntityBase):
    entity_type: Literal["rack"] = "rack"
    name: str
    description: str | None = None
    location: str | None = None


class MachineEntity(EntityBase):
    entity_type: Literal["machine"] = "machine"
    name: str
    model: str | None = None
    serial_number: str | None = None
    location: str | None = None
    status: str | None = None
    purchase_date: date | None = None
    qr_code: str | None = None
    comment: str | None = None


class ExpenseEntity(SiteScoped):
    entity_type: Literal["expense"] = "expense"
    description: str
    amount: float
    category: str | None = None
    expense_date: date | None = None
    client_name: str | None = None


class TaskEntity(SiteScoped):
    entity_type: Literal["task"] = "task"
    title: str
    description: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    status: str | None = None
    priority: str | None = None
    assignee: str | None = None


class ChoiceDetail(BaseModel):
    """One finish selected by a client (tiles, parquet...)."""

    number: int
    kind: str
    locations: list[str] = []
    brand: str | None = None
    collection: str | None = None
    model: str | None = None
    reference: str | None = None
    color: str | None = None
    length_cm: float | None = None
    width_cm: float | None = None
    thickness_mm: float | None = None
    finish: str | None = None
    estimated_area_m2: float | None = None
    joint_color: str | None = None
    joint_width_mm: float | None = None
    joint_type: str | None = None
    laying_type: str | None = None
    laying_direction: str | None = None
    laying_notes: str | None = None
    notes: str | None = None


class ClientChoiceEntity(SiteScoped):
    entity_type: Literal["client-choice"] = "client-choice"
    client_name: str
    visit_date: date | None = None
    status: str | None = None
    phone: str | None = None
    email: str | None = None
    general_notes: str | None = None
    details: list[ChoiceDetail] = []


BusinessEntity = Annotated[
    Union[
        SiteEntity,
        ClientEntity,
        OrderEntity,
        ProgressStatementEntity,
        SubcontractorEntity,
        DocumentEntity,
        NoteEntity,
        RemarkEntity,
        MaterialEntity,
        RackEntity,
        MachineEntity,
        ExpenseEntity,
        TaskEntity,
        ClientChoiceEntity,
    ],
    Field(discriminator="entity_type"),
]

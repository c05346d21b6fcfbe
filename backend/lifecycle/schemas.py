"""Inbound shipment record delivered by the ingestion collaborator."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from lifecycle.errors import ShipmentValidationError


class EmailMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    subject: str | None = None
    sender: str | None = Field(default=None, validation_alias=AliasChoices("sender", "from"))
    received_at: datetime | None = Field(default=None, validation_alias=AliasChoices("received_at", "receivedAt"))
    attachment_name: str | None = Field(
        default=None, validation_alias=AliasChoices("attachment_name", "attachmentName")
    )
    attachment_size: int | None = Field(
        default=None, validation_alias=AliasChoices("attachment_size", "attachmentSize")
    )


class ShipmentIntake(BaseModel):
    """Create-or-update payload. Only fields present in the payload overwrite stored values."""

    model_config = ConfigDict(allow_inf_nan=False)

    shipment_id: str = Field(..., max_length=64, validation_alias=AliasChoices("shipment_id", "id"))
    container_no: str | None = Field(default=None, max_length=32)

    shipper: str | None = Field(default=None, max_length=255)
    consignee: str | None = Field(default=None, max_length=255)
    hs_code: str | None = Field(default=None, max_length=32)
    commodity: str | None = None
    port: str | None = Field(default=None, max_length=255)
    destination: str | None = Field(default=None, max_length=255)
    eta: datetime | None = None
    arrival_date: datetime | None = None
    promised_date: datetime | None = None
    eta_planned: datetime | None = None
    weight_kg: float | None = Field(default=None, ge=0)
    documents: list[str] | None = None
    isf_filed: bool | None = None

    carrier: str | None = Field(default=None, max_length=100)
    vessel: str | None = Field(default=None, max_length=100)
    voyage: str | None = Field(default=None, max_length=50)
    total_charges: float | None = None

    cost_saved: float | None = None
    gross_margin: float | None = None

    source: Literal["email", "manual", "api"] = "manual"
    email_metadata: EmailMetadata | None = None

    @field_validator("shipment_id")
    @classmethod
    def _strip_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("shipment id must not be blank")
        return value

    @field_validator("hs_code", mode="before")
    @classmethod
    def _hs_code_as_text(cls, value: Any) -> Any:
        # Extracted documents sometimes deliver HS codes as numbers.
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @model_validator(mode="after")
    def _email_metadata_requires_email_source(self) -> ShipmentIntake:
        if self.email_metadata is not None and self.source != "email":
            raise ValueError("email_metadata is only accepted when source is 'email'")
        return self

    def field_updates(self) -> dict[str, Any]:
        """Business fields explicitly provided by the caller."""
        updates = self.model_dump(exclude_unset=True, exclude={"shipment_id", "email_metadata"})
        if "email_metadata" in self.model_fields_set:
            updates["email_metadata"] = (
                self.email_metadata.model_dump(mode="json", exclude_none=True) if self.email_metadata else None
            )
        return updates


def parse_intake(payload: dict[str, Any]) -> ShipmentIntake:
    """Validate a raw record, raising ShipmentValidationError before it enters any phase."""
    try:
        return ShipmentIntake.model_validate(payload)
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(part) for part in err['loc']) or 'record'}: {err['msg']}" for err in exc.errors()
        ]
        raise ShipmentValidationError(
            "Invalid shipment record",
            errors=errors,
            shipment_id=str(payload.get("shipment_id") or payload.get("id") or "") or None,
        ) from exc

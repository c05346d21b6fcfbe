"""Typed failures raised by the shipment lifecycle engine."""

from __future__ import annotations


class LifecycleError(Exception):
    """Base class for lifecycle failures reported back to callers."""

    code = "lifecycle_error"

    def __init__(self, message: str, *, shipment_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.shipment_id = shipment_id


class ShipmentNotFoundError(LifecycleError):
    code = "not_found"

    def __init__(self, shipment_id: str):
        super().__init__(f"Shipment '{shipment_id}' not found", shipment_id=shipment_id)


class InvalidTransitionError(LifecycleError):
    code = "invalid_transition"

    def __init__(self, shipment_id: str, event_type: str, current_phase: str, reason: str = ""):
        detail = f"Cannot apply '{event_type}' while shipment is in '{current_phase}'"
        if reason:
            detail = f"{detail}: {reason}"
        super().__init__(detail, shipment_id=shipment_id)
        self.event_type = event_type
        self.current_phase = current_phase


class ShipmentValidationError(LifecycleError):
    code = "validation_error"

    def __init__(self, message: str, *, errors: list[str] | None = None, shipment_id: str | None = None):
        super().__init__(message, shipment_id=shipment_id)
        self.errors = errors or [message]


class ConcurrentModificationError(LifecycleError):
    code = "concurrent_modification"

    def __init__(self, shipment_id: str):
        super().__init__(
            f"Shipment '{shipment_id}' was modified concurrently; reload and retry",
            shipment_id=shipment_id,
        )

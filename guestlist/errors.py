"""Domain exceptions for the check-in backend.

Every business-rule rejection raised by the services is a ``GuestListError``
subclass.  The HTTP layer turns them into a JSON body with a stable ``error``
code so clients can tell an inline field error from a dead link or a
connection problem without parsing messages.
"""
from typing import Any, Optional


class GuestListError(Exception):
    """Base class for expected, user-correctable failures."""

    code = "guestlist_error"
    status_code = 400

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


# ── Input ──────────────────────────────────────────────────────────
class ValidationError(GuestListError):
    code = "validation_error"
    status_code = 422

    def __init__(self, field: str, problem: str):
        super().__init__(f"Invalid '{field}': {problem}", {"field": field})
        self.field = field
        self.problem = problem


class InvalidTransition(GuestListError):
    code = "invalid_transition"
    status_code = 409

    def __init__(self, operation: str, current_status: str):
        super().__init__(
            f"Cannot {operation} an attendee in status {current_status}",
            {"operation": operation, "status": current_status},
        )
        self.operation = operation
        self.current_status = current_status


# ── Conflicts ──────────────────────────────────────────────────────
class DuplicateCpf(GuestListError):
    code = "duplicate_cpf"
    status_code = 409

    def __init__(self, cpf: str):
        super().__init__(f"CPF {cpf} is already registered for this event", {"cpf": cpf})
        self.cpf = cpf


class DuplicateWristband(GuestListError):
    code = "duplicate_wristband"
    status_code = 409

    def __init__(self, collisions: dict[str, str]):
        codes = sorted(set(collisions.values()))
        sectors = sorted(collisions)
        super().__init__(
            f"Wristband(s) already in use: {', '.join(codes)}",
            {"codes": codes, "sectors": sectors},
        )
        self.codes = codes
        self.sectors = sectors


class CapacityExceeded(GuestListError):
    code = "capacity_exceeded"
    status_code = 409

    def __init__(self, supplier_name: str, limit: int):
        super().__init__(
            f"Supplier '{supplier_name}' reached its registration limit ({limit})",
            {"supplier": supplier_name, "limit": limit},
        )
        self.limit = limit


class SupplierInactive(GuestListError):
    code = "supplier_inactive"
    status_code = 403

    def __init__(self, supplier_name: str):
        super().__init__(f"Registrations for '{supplier_name}' are closed", {"supplier": supplier_name})


class ResourceInUse(GuestListError):
    code = "resource_in_use"
    status_code = 409

    def __init__(self, resource: str, resource_id: str, references: dict[str, int]):
        super().__init__(
            f"{resource} {resource_id} is still referenced and cannot be deleted",
            {"resource": resource, "id": resource_id, "references": references},
        )
        self.references = references


# ── Missing entities / links ───────────────────────────────────────
class NotFound(GuestListError):
    code = "not_found"
    status_code = 404
    entity = "Resource"

    def __init__(self, entity_id: str):
        super().__init__(f"{self.entity} '{entity_id}' not found", {"id": entity_id})
        self.entity_id = entity_id


class EventNotFound(NotFound):
    code = "event_not_found"
    entity = "Event"


class SectorNotFound(NotFound):
    code = "sector_not_found"
    entity = "Sector"


class SupplierNotFound(NotFound):
    code = "supplier_not_found"
    entity = "Supplier"


class AttendeeNotFound(NotFound):
    code = "attendee_not_found"
    entity = "Attendee"


class InvalidToken(GuestListError):
    code = "invalid_token"
    status_code = 404

    def __init__(self):
        super().__init__("This link is invalid or has been revoked")


class WrongPurpose(GuestListError):
    code = "wrong_purpose"
    status_code = 403

    def __init__(self, expected: str, actual: str):
        super().__init__(
            f"This link is a {actual} link, not a {expected} link",
            {"expected": expected, "actual": actual},
        )


# ── Approval workflows ─────────────────────────────────────────────
class MissingSubstitutionData(GuestListError):
    code = "missing_substitution_data"
    status_code = 409

    def __init__(self, attendee_id: str):
        super().__init__(f"Attendee {attendee_id} has no pending substitution", {"attendee_id": attendee_id})


class InvalidSubstitutionData(GuestListError):
    code = "invalid_substitution_data"
    status_code = 422

    def __init__(self, problem: str):
        super().__init__(f"Pending substitution is invalid: {problem}")


class MissingSectorChangeData(GuestListError):
    code = "missing_sector_change_data"
    status_code = 409

    def __init__(self, attendee_id: str):
        super().__init__(f"Attendee {attendee_id} has no pending sector change", {"attendee_id": attendee_id})


class InvalidSectorChangeData(GuestListError):
    code = "invalid_sector_change_data"
    status_code = 422

    def __init__(self, problem: str):
        super().__init__(f"Pending sector change is invalid: {problem}")


# ── External services / access ─────────────────────────────────────
class OracleUnavailable(GuestListError):
    code = "oracle_unavailable"
    status_code = 503

    def __init__(self, reason: str):
        super().__init__(f"Face matching is unavailable: {reason}. Please retry.")
        self.reason = reason


class AuthenticationFailed(GuestListError):
    code = "authentication_failed"
    status_code = 401

    def __init__(self, reason: str = "Invalid credentials"):
        super().__init__(reason)

"""Typed domain failures.

Each one is an ``HTTPException`` so services can raise them directly and the
API renders ``{"detail": {"code": ..., "message": ...}}`` with the right status.
"""
from fastapi import HTTPException, status


class DomainError(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "domain_error"

    def __init__(self, message: str, **extra):
        self.message = message
        detail = {"code": self.code, "message": message}
        detail.update(extra)
        super().__init__(status_code=self.status_code, detail=detail)


class EventNotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "event_not_found"


class OptionNotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "option_not_found"


class ParticipantNotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "participant_not_found"


class WaitlistEntryNotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "waitlist_entry_not_found"


class RecurringEventNotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "recurring_event_not_found"


class NotOrganizer(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "not_organizer"


class InvalidTransition(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_transition"

    def __init__(self, old_status, new_status, message: str = ""):
        self.old_status = old_status
        self.new_status = new_status
        super().__init__(
            message or f"Cannot transition from {old_status.value} to {new_status.value}",
            old_status=old_status.value,
            new_status=new_status.value,
        )


class DuplicateParticipant(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_participant"


class DuplicateCheckIn(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_check_in"


class ConcurrentModification(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "concurrent_modification"


class InvalidRequest(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_request"

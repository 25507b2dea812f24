"""Import every model so Base.metadata knows about all tables."""
from gathering.models.recurring_event import RecurringEvent  # noqa: F401
from gathering.models.event import Event, EventStatus  # noqa: F401
from gathering.models.place_option import EventPlaceOption  # noqa: F401
from gathering.models.vote import EventVote  # noqa: F401
from gathering.models.participant import EventParticipant  # noqa: F401
from gathering.models.waitlist import EventWaitlist  # noqa: F401
from gathering.models.check_in import EventCheckIn  # noqa: F401
from gathering.models.audit_log import EventAuditLog  # noqa: F401

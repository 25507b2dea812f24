"""Outbound collaborators, exposed as FastAPI dependencies so they can be swapped."""
from gathering.integrations.notifier import LoggingNotifier, Notifier, NotificationKind  # noqa: F401
from gathering.integrations.places import NoPlaceLookup, PlaceLookup  # noqa: F401
from gathering.integrations.recommender import AiAnalysisDispatcher, OpenAIRecommender  # noqa: F401

_notifier: Notifier = LoggingNotifier()
_place_lookup: PlaceLookup = NoPlaceLookup()
_dispatcher: AiAnalysisDispatcher = OpenAIRecommender()


def get_notifier() -> Notifier:
    return _notifier


def get_place_lookup() -> PlaceLookup:
    return _place_lookup


def get_ai_dispatcher() -> AiAnalysisDispatcher:
    return _dispatcher

"""Resolution of venues that are not in the internal catalog."""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from gathering.models.place_option import ExternalVenue

logger = logging.getLogger(__name__)


class PlaceLookup(ABC):
    @abstractmethod
    def lookup(self, provider: str, external_place_id: str) -> Optional[ExternalVenue]:
        """Return provider details for the place, or None when the provider does not know it."""


class NoPlaceLookup(PlaceLookup):
    """Used when no place provider is configured; callers keep the details they were given."""

    def lookup(self, provider: str, external_place_id: str) -> Optional[ExternalVenue]:
        logger.debug("No place provider configured, skipping lookup of %s:%s", provider, external_place_id)
        return None

"""
Rating services, item eligibility and rating resolution.
"""

from dataclasses import dataclass
from typing import Any, List, Optional

from .cancellation import CancelToken
from .constants import logger
from .models import Item


@dataclass
class RatingService:
    """
    A rating provider registration.

    ``platform`` fetches a rating for an item (``get_rating(token, item)``)
    and may be None for providers whose scores only come from the media
    server. ``logo`` turns ratings into badges (``get_logos(...)``).
    """
    name: str
    platform: Any = None
    logo: Any = None


class ItemEligibilityService:
    def __init__(self, rating_services: List[RatingService]):
        self.rating_services = rating_services

    @property
    def has_providers(self) -> bool:
        return any(s.platform is not None for s in self.rating_services)

    def is_eligible(self, item: Item) -> bool:
        if not item.is_eligible:
            logger.debug(f"ITEM_INELIGIBLE title={item.title} reason=not_eligible")
            return False
        if not item.ratings and not self.has_providers:
            logger.debug(f"ITEM_INELIGIBLE title={item.title} reason=no_ratings")
            return False
        return True


class RatingBuilder:
    """Fills an item's missing ratings, one provider at a time in registration order."""

    def __init__(self, rating_services: List[RatingService], timeout: Optional[float] = None):
        self.rating_services = rating_services
        self.timeout = timeout

    def build_ratings(self, token: CancelToken, item: Item) -> None:
        scope = token.with_timeout(self.timeout) if self.timeout else token.child()
        try:
            for service in self.rating_services:
                if item.has_rating(service.name):
                    logger.debug(f"RATING_PRESENT title={item.title} provider={service.name}")
                    continue
                if service.platform is None:
                    continue
                scope.check()
                logger.debug(f"RATING_FETCH title={item.title} provider={service.name}")
                rating = service.platform.get_rating(scope, item)
                if rating is not None:
                    item.add_rating(rating)
        finally:
            scope.release()

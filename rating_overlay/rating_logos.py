"""
Per-provider logo services.

Each service turns the ratings of its provider into badges: it picks the
logo image and formats the score the way the provider displays it.
"""

from decimal import Decimal, ROUND_HALF_EVEN, ROUND_HALF_UP
from typing import List, Optional

from .cancellation import CancelToken
from .constants import (
    logger,
    RATING_IMDB,
    RATING_ROTTEN_TOMATOES,
    RATING_TMDB,
    RATING_TYPE_AUDIENCE,
    RATING_TYPE_CRITIC,
    RT_LOW_SCORE_THRESHOLD,
)
from .badges import LogoCreator
from .models import Logo, LogoDimensions, Rating


def format_one_decimal(score: float) -> str:
    """7.84 -> '7.8'; halves round away from zero."""
    return str(Decimal(repr(score)).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP))


def format_percentage(score: float) -> str:
    """Score out of 10 as a whole percentage; 5.95 -> '60%'."""
    percentage = Decimal(repr(score)) * 10
    return f"{percentage.quantize(Decimal('1'), rounding=ROUND_HALF_EVEN)}%"


class ScoreLogoService:
    """Logo service for providers showing a one-decimal score beside one logo."""

    name = ''

    def __init__(self, logo_creator: LogoCreator, logo_path: str):
        self.logo_creator = logo_creator
        self.logo_path = logo_path

    def get_logos(self, token: Optional[CancelToken], ratings: List[Rating], item_id: str,
                  dimensions: LogoDimensions) -> List[Logo]:
        logger.debug(f"LOGO_BUILD provider={self.name} item={item_id}")
        logos = []
        for rating in ratings:
            if rating.score <= 0:
                continue
            logos.append(self.logo_creator.create_logo(self.logo_path, format_one_decimal(rating.score), dimensions))
        return logos


class IMDBLogoService(ScoreLogoService):
    name = RATING_IMDB


class TMDBLogoService(ScoreLogoService):
    name = RATING_TMDB


class RottenTomatoesLogoService:
    name = RATING_ROTTEN_TOMATOES

    def __init__(self, logo_creator: LogoCreator, critic: str, critic_low: str, audience: str, audience_low: str):
        self.logo_creator = logo_creator
        self.paths = {
            RATING_TYPE_CRITIC: (critic, critic_low),
            RATING_TYPE_AUDIENCE: (audience, audience_low),
        }

    def logo_path_for(self, rating: Rating) -> str:
        """Tomato logo for the rating type; the 'low' variant below 60%. '' for other types."""
        paths = self.paths.get(rating.type)
        if paths is None:
            return ''
        normal, low = paths
        return low if rating.score * 10 < RT_LOW_SCORE_THRESHOLD else normal

    def get_logos(self, token: Optional[CancelToken], ratings: List[Rating], item_id: str,
                  dimensions: LogoDimensions) -> List[Logo]:
        logger.debug(f"LOGO_BUILD provider={self.name} item={item_id}")
        logos = []
        for rating in ratings:
            if rating.score <= 0:
                continue
            path = self.logo_path_for(rating)
            if not path:
                continue
            logos.append(self.logo_creator.create_logo(path, format_percentage(rating.score), dimensions))
        return logos

"""
Service registry for Media Rating Overlay.

Assembles media services (libraries/items/posters handles plus the enabled
library configs) and rating services (platform + logo handles) from the
loaded configuration, and wires the processing chain that uses them.
Any construction failure surfaces as ServiceInitError.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .cancellation import WorkerBudget
from .badges import LogoCreator, LogoService
from .compositor import ImageService, OverlayService, PosterConfig, PosterGenerator
from .config import Config, LibraryConfig
from .constants import logger, RATING_IMDB, RATING_ROTTEN_TOMATOES, RATING_TMDB
from .errors import ServiceInitError
from .files import FileManager
from .http_client import HTTPClient
from .item_processor import ItemProcessor
from .library_processor import LibraryProcessor, MediaHandles
from .plex import (
    PlexClient,
    PlexFilterService,
    PlexItemService,
    PlexLibraryService,
    PlexPosterService,
)
from .rating_logos import IMDBLogoService, RottenTomatoesLogoService, TMDBLogoService
from .ratings import ItemEligibilityService, RatingBuilder, RatingService
from .tmdb import TMDBClient, TMDBRatingPlatform

PLEX_SERVICE_NAME = 'Plex'


@dataclass
class MediaService:
    name: str
    libraries: object = None
    items: object = None
    posters: object = None
    library_configs: List[LibraryConfig] = field(default_factory=list)

    @property
    def handles(self) -> MediaHandles:
        return MediaHandles(self.libraries, self.items, self.posters)


class ServiceRegistry:
    def __init__(self, config: Config, poster_config: Optional[PosterConfig] = None,
                 file_manager: Optional[FileManager] = None):
        self.config = config
        self.poster_config = poster_config or PosterConfig()
        self.file_manager = file_manager or FileManager()
        self.media_services: List[MediaService] = []
        self.rating_services: List[RatingService] = []

    def initialize(self) -> 'ServiceRegistry':
        try:
            http = HTTPClient(self.config.http_client.timeout, self.config.http_client.max_retries)
            self.rating_services = self.build_rating_services(http)
            self.media_services = self.build_media_services(http)
        except ServiceInitError:
            raise
        except (ValueError, TypeError, OSError) as e:
            raise ServiceInitError('unable to initialize services', e)
        logger.info(
            f"SERVICES_READY media={[s.name for s in self.media_services]} "
            f"ratings={[s.name for s in self.rating_services]}"
        )
        return self

    def build_rating_services(self, http: HTTPClient) -> List[RatingService]:
        logo_creator = LogoCreator()
        pc = self.poster_config

        tmdb_platform = None
        if self.config.tmdb.enabled:
            client = TMDBClient(
                self.config.tmdb.api_key,
                http,
                language=self.config.tmdb.language,
                region=self.config.tmdb.region,
            )
            tmdb_platform = TMDBRatingPlatform(client)

        return [
            RatingService(RATING_TMDB, tmdb_platform, TMDBLogoService(logo_creator, pc.tmdb)),
            RatingService(
                RATING_ROTTEN_TOMATOES,
                None,
                RottenTomatoesLogoService(
                    logo_creator, pc.rt_critic, pc.rt_critic_low, pc.rt_audience, pc.rt_audience_low),
            ),
            RatingService(RATING_IMDB, None, IMDBLogoService(logo_creator, pc.imdb)),
        ]

    def build_media_services(self, http: HTTPClient) -> List[MediaService]:
        services = []
        plex = self.config.plex
        if plex.enabled:
            client = PlexClient(plex.url, plex.token, http)
            services.append(MediaService(
                name=PLEX_SERVICE_NAME,
                libraries=PlexLibraryService(client),
                items=PlexItemService(client, PlexFilterService()),
                posters=PlexPosterService(client, self.file_manager),
                library_configs=self.config.enabled_libraries(),
            ))
        return services

    def build_library_processor(self, budget: WorkerBudget) -> LibraryProcessor:
        """Wire compositor, eligibility and rating resolution into the processors."""
        image_service = ImageService(self.poster_config, self.file_manager)
        generator = PosterGenerator(
            self.poster_config,
            image_service,
            OverlayService(self.poster_config, image_service),
            LogoService(),
            self.rating_services,
        )
        item_processor = ItemProcessor(
            budget,
            generator,
            ItemEligibilityService(self.rating_services),
            RatingBuilder(self.rating_services, self.config.processor.item_processor.rating_builder.timeout),
        )
        return LibraryProcessor(item_processor, self.config.processor.library_processor.default_timeout)

"""
Service wiring.

Builds every component once from ``Settings`` and hands each its
collaborators explicitly. The API layer asks for ``get_services()``; tests
build a ``GatewayServices`` directly with an in-memory database and a mock
transport.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from typing import Optional

import httpx
from sqlalchemy.engine import Engine

from foundry.auth.quota import QuotaGate
from foundry.cache.analysis_cache import AnalysisCache
from foundry.cache.result_cache import ResultCache
from foundry.database.session import (
    SessionFactory,
    create_db_engine,
    create_session_factory,
    get_database_url,
    init_db,
)
from foundry.gateway.client import DataForSEOClient, GatewayConfig
from foundry.gateway.poller import PollerConfig, TaskPoller
from foundry.gateway.usage import UsageLogger
from foundry.analysis.competitor import CompetitorAnalysisService
from foundry.analysis.search_volume import SearchVolumeService
from foundry.analysis.serp import SerpAnalysisService
from foundry.utils.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class GatewayServices:
    settings: Settings
    engine: Engine
    session_factory: SessionFactory
    usage_logger: UsageLogger
    client: DataForSEOClient
    poller: TaskPoller
    result_cache: ResultCache
    legacy_cache: AnalysisCache
    quota: QuotaGate
    competitor: CompetitorAnalysisService
    serp: SerpAnalysisService
    search_volume: SearchVolumeService

    @classmethod
    def build(
        cls,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        create_tables: bool = True,
    ) -> "GatewayServices":
        settings = settings or get_settings()

        engine = create_db_engine(get_database_url(settings.DATABASE_URL))
        if create_tables:
            init_db(engine)
        session_factory = create_session_factory(engine)

        usage_logger = UsageLogger(session_factory)
        client = DataForSEOClient(GatewayConfig.from_settings(settings), usage_logger, transport=transport)
        if not client.has_credentials:
            logger.warning("DATAFORSEO_LOGIN/DATAFORSEO_PASSWORD not set - upstream calls will fail")

        poller = TaskPoller(client, PollerConfig.from_settings(settings))
        ttl = timedelta(hours=settings.CACHE_TTL_HOURS)
        result_cache = ResultCache(session_factory, ttl=ttl)
        legacy_cache = AnalysisCache(session_factory, ttl=ttl)
        quota = QuotaGate.from_settings(session_factory, settings)

        return cls(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            usage_logger=usage_logger,
            client=client,
            poller=poller,
            result_cache=result_cache,
            legacy_cache=legacy_cache,
            quota=quota,
            competitor=CompetitorAnalysisService(
                client, poller, result_cache, quota, legacy_cache,
                max_crawl_pages=settings.ONPAGE_MAX_CRAWL_PAGES,
            ),
            serp=SerpAnalysisService(client, quota),
            search_volume=SearchVolumeService(client, quota),
        )

    async def close(self) -> None:
        await self.client.close()
        self.engine.dispose()


@lru_cache
def get_services() -> GatewayServices:
    """Process-wide services built from environment settings."""
    return GatewayServices.build()

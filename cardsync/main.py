# cardsync/main.py
"""Composition root and HTTP entry point.

Every component is built here and handed its dependencies explicitly.
Run with `python -m cardsync.main` or `uvicorn cardsync.main:create_app --factory`.
"""
import threading
from dataclasses import dataclass
from typing import Optional

import uvicorn
from fastapi import FastAPI
from sqlalchemy.engine import Engine

from cardsync.api.routes import router as api_router
from cardsync.config import Settings, load_settings
from cardsync.crud import ListingRepository
from cardsync.db import create_db_engine, init_db, make_session_factory
from cardsync.notifier import DiscordNotifier
from cardsync.scheduler import SyncScheduler
from cardsync.scrape import ListingScraper
from cardsync.services import SyncService
from cardsync.utils import logger


@dataclass
class Container:
    settings: Settings
    engine: Engine
    session_factory: object
    scraper: ListingScraper
    repository: ListingRepository
    notifier: DiscordNotifier
    service: SyncService
    scheduler: SyncScheduler


def build_container(settings: Optional[Settings] = None) -> Container:
    settings = settings or load_settings()
    engine = create_db_engine(settings.database_url, settings.db_pool_size, settings.db_max_overflow)
    session_factory = make_session_factory(engine)
    # set on shutdown; the scraper and the service both watch it
    cancel_event = threading.Event()
    scraper = ListingScraper.from_settings(settings, cancel_event=cancel_event)
    repository = ListingRepository(session_factory)
    notifier = DiscordNotifier.from_settings(settings)
    service = SyncService(
        scraper,
        repository,
        notifier,
        source_label=settings.source_label,
        retain_failed_batch=settings.retain_failed_batch,
        cancel_event=cancel_event,
    )
    scheduler = SyncScheduler(
        service,
        settings.cron_schedule,
        timezone=settings.scheduler_timezone,
        sync_on_startup=settings.sync_on_startup,
    )
    return Container(settings, engine, session_factory, scraper, repository, notifier, service, scheduler)


def create_app(container: Optional[Container] = None, start_scheduler: bool = True) -> FastAPI:
    container = container or build_container()
    app = FastAPI(title="cardsync")
    app.state.container = container
    app.include_router(api_router)

    @app.on_event("startup")
    def on_startup():
        init_db(container.engine)
        if start_scheduler:
            container.scheduler.start()
        logger.info("Card sync service initialized (source=%s)", container.settings.source_name)

    @app.on_event("shutdown")
    def on_shutdown():
        container.scheduler.shutdown()
        container.engine.dispose()

    return app


def main():
    container = build_container()
    uvicorn.run(create_app(container), host=container.settings.host, port=container.settings.port)


if __name__ == "__main__":
    main()

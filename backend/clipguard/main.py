"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clipguard.api import router
from clipguard.core.settings import APP_VERSION, PATHS
from clipguard.db.base import Base
from clipguard.db.session import SessionLocal, engine
from clipguard.models import Video  # noqa: F401
from clipguard.services import repository
from clipguard.services.broadcast import broadcaster
from clipguard.services.config_store import load_config, save_config
from clipguard.workers.dispatch import enqueue_job, runner

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("clipguard")


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI):
        PATHS.runtime_root.mkdir(parents=True, exist_ok=True)
        PATHS.staging_root.mkdir(parents=True, exist_ok=True)

        Base.metadata.create_all(bind=engine)

        # Ensure config file exists with defaults.
        if not PATHS.config_path.exists():
            save_config(load_config())
        config = load_config()

        broadcaster.queue_size = config.pipeline.subscriber_queue_size
        broadcaster.open()
        runner.start()

        if config.pipeline.resume_pending_on_startup and config.analysis_enabled():
            with SessionLocal() as db:
                pending_ids = repository.list_pending_video_ids(db)
            for video_id in pending_ids:
                enqueue_job(video_id)
            if pending_ids:
                logger.info("Resubmitted %d videos still pending", len(pending_ids))

        yield

        await runner.shutdown()
        broadcaster.close()

    app = FastAPI(title="ClipGuard", version=APP_VERSION, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    return app


app = create_app()

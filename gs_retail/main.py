import logging
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from . import web
from .db import get_engine, init_db, make_engine, use_engine
from .mqtt_ingestor import start_mqtt, stop_mqtt
from .settings import Settings, settings

logging.basicConfig(level=settings.LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger("gs_retail")


def create_app(cfg: Settings = settings) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = get_engine() if cfg.DB_URL == settings.DB_URL else use_engine(make_engine(cfg.DB_URL))
        logger.info("Initializing database at %s", cfg.DB_URL)
        init_db(engine)

        mqtt = None
        if cfg.INGESTOR_ENABLED:
            logger.info("Starting MQTT ingestor thread...")
            mqtt = start_mqtt(cfg)

        base = f"http://localhost:{cfg.WEB_PORT}"
        logger.info(
            "GS Retail relay is running\n"
            "Web Dashboard: %s\nAPI Counts:    %s/api/counts\nAPI Stats:     %s/api/stats",
            base, base, base,
        )
        yield

        if mqtt is not None:
            stop_mqtt(*mqtt)
        engine.dispose()
        logger.info("Closed the database connection.")

    app = FastAPI(title="GS Retail Relay", lifespan=lifespan)
    app.include_router(web.router)

    # dashboards are plain static files; mounted last so /api/* wins
    if cfg.STATIC_DIR and Path(cfg.STATIC_DIR).is_dir():
        app.mount("/", StaticFiles(directory=cfg.STATIC_DIR, html=True), name="static")
    return app


app = create_app()


def run():
    uvicorn.run(app, host=settings.WEB_HOST, port=settings.WEB_PORT)


if __name__ == "__main__":
    run()

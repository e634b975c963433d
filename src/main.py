import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from src.api.routes.routes import router
from src.infrastructure.db.session import engine
from src.infrastructure.db.models import Base
from src.infrastructure.logging import configure_logging

configure_logging()

logger = logging.getLogger(__name__)


def wait_for_database(
    db_engine: Engine,
    attempts: int,
    delay_seconds: float,
    sleep=time.sleep,
) -> None:
    """Blocks until the database answers ``SELECT 1`` or attempts run out."""
    for attempt in range(1, attempts + 1):
        try:
            with db_engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except OperationalError:
            if attempt == attempts:
                logger.exception(
                    "Database unreachable after %s attempts, check DATABASE_URL",
                    attempts,
                )
                raise
            logger.warning(
                "Database not ready (attempt %s/%s), retrying in %.1fs",
                attempt,
                attempts,
                delay_seconds,
            )
            sleep(delay_seconds)
        else:
            logger.info("Database reachable")
            return


@asynccontextmanager
async def lifespan(app: FastAPI):
    wait_for_database(
        engine,
        attempts=int(os.getenv("DB_CONNECT_MAX_RETRIES", "30")),
        delay_seconds=float(os.getenv("DB_CONNECT_RETRY_DELAY", "1.5")),
    )
    # The dedupe log is ours; the other tables exist here only for local databases.
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="Payment Webhook Reconciler", lifespan=lifespan)

app.include_router(router)

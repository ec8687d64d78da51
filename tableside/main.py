import logging
import time

from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from tableside.api.errors import register_exception_handlers
from tableside.api.routes.routes import router
from tableside.application.container import build_container
from tableside.config import Settings
from tableside.domain.clock import Clock
from tableside.infrastructure.db.models import Base
from tableside.infrastructure.gateway.razorpay_gateway import PaymentGateway
from tableside.infrastructure.notifications.notifiers import Notifier

logger = logging.getLogger(__name__)


def _wait_for_db(engine: Engine, max_retries: int, retry_delay_seconds: float) -> None:
    # Handles the common case where API starts before Postgres is ready.
    for attempt in range(1, max_retries + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database is reachable.")
            return
        except OperationalError:
            if attempt == max_retries:
                logger.exception(
                    "Database not reachable after %s attempts. Check DATABASE_URL and Postgres status.",
                    max_retries,
                )
                raise
            logger.warning(
                "Database not ready (attempt %s/%s). Retrying in %.1f seconds...",
                attempt,
                max_retries,
                retry_delay_seconds,
            )
            time.sleep(retry_delay_seconds)


def create_app(
    settings: Settings | None = None,
    session_factory: sessionmaker | None = None,
    gateway: PaymentGateway | None = None,
    notifier: Notifier | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    container = build_container(
        settings,
        session_factory=session_factory,
        gateway=gateway,
        notifier=notifier,
        clock=clock,
    )

    app = FastAPI(title="Tableside Reservation & Fulfillment Engine")
    app.state.container = container
    app.include_router(router)
    register_exception_handlers(app)

    @app.on_event("startup")
    def on_startup() -> None:
        _wait_for_db(
            container.engine,
            settings.db_connect_max_retries,
            settings.db_connect_retry_delay,
        )
        Base.metadata.create_all(bind=container.engine)

    @app.on_event("shutdown")
    def on_shutdown() -> None:
        container.close()

    return app


app = create_app()

import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from tableside.application.documents import DocumentRenderer
from tableside.application.menu_catalog import MenuCatalog
from tableside.application.notifications import NotificationDispatcher
from tableside.application.order_engine import OrderEngine
from tableside.application.payment_engine import PaymentEngine
from tableside.application.reservation_engine import ReservationEngine
from tableside.config import Settings
from tableside.domain.clock import Clock
from tableside.infrastructure.db.session import create_db_engine, create_session_factory
from tableside.infrastructure.gateway.razorpay_gateway import PaymentGateway, RazorpayGateway
from tableside.infrastructure.gateway.signature import SignatureVerifier
from tableside.infrastructure.locks import KeyedLocks
from tableside.infrastructure.notifications.notifiers import (
    LoggingNotifier,
    Notifier,
    WebhookNotifier,
)

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    clock: Clock
    locks: KeyedLocks
    dispatcher: NotificationDispatcher
    gateway: PaymentGateway | None
    reservations: ReservationEngine
    orders: OrderEngine
    payments: PaymentEngine
    menu: MenuCatalog
    documents: DocumentRenderer

    def close(self) -> None:
        self.dispatcher.shutdown(wait=True)
        close_gateway = getattr(self.gateway, "close", None)
        if close_gateway:
            close_gateway()


def build_container(
    settings: Settings,
    session_factory: sessionmaker | None = None,
    gateway: PaymentGateway | None = None,
    notifier: Notifier | None = None,
    clock: Clock | None = None,
) -> Container:
    if session_factory is None:
        engine = create_db_engine(settings.database_url)
        session_factory = create_session_factory(engine)
    else:
        engine = session_factory.kw["bind"]

    clock = clock or Clock()
    locks = KeyedLocks(timeout_seconds=settings.lock_timeout_seconds)

    if notifier is None:
        if settings.notify_webhook_url:
            notifier = WebhookNotifier(
                settings.notify_webhook_url,
                timeout_seconds=settings.notify_timeout_seconds,
            )
        else:
            notifier = LoggingNotifier()
    dispatcher = NotificationDispatcher(
        session_factory,
        notifier,
        clock,
        max_workers=settings.notify_max_workers,
    )

    if gateway is None and settings.razorpay_key_id and settings.razorpay_key_secret:
        gateway = RazorpayGateway(
            settings.razorpay_key_id,
            settings.razorpay_key_secret,
            timeout_seconds=settings.gateway_timeout_seconds,
        )
    if gateway is None:
        logger.warning("Razorpay keys not configured; payment intents are disabled.")

    verifier = None
    if settings.razorpay_key_secret:
        verifier = SignatureVerifier(settings.razorpay_key_secret)

    return Container(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        clock=clock,
        locks=locks,
        dispatcher=dispatcher,
        gateway=gateway,
        reservations=ReservationEngine(session_factory, locks, dispatcher, clock),
        orders=OrderEngine(session_factory, locks, dispatcher, clock),
        payments=PaymentEngine(
            session_factory,
            locks,
            dispatcher,
            clock,
            gateway=gateway,
            verifier=verifier,
            default_currency=settings.default_currency,
        ),
        menu=MenuCatalog(session_factory, clock),
        documents=DocumentRenderer(settings.venue_name, settings.invoice_tax_rate),
    )

"""Database infrastructure — engine, ORM models, and repositories."""

from creator_escrow.infrastructure.database.engine import (
    close_db,
    get_async_session,
    get_session_factory,
    init_db,
)
from creator_escrow.infrastructure.database.orm_models import (
    Base,
    Booking,
    Dispute,
    LedgerEvent,
    PaymentRecord,
    PayoutWallet,
    ServiceListing,
    SettlementObligation,
)
from creator_escrow.infrastructure.database.repositories import (
    BookingRepository,
    DisputeRepository,
    EventRepository,
    ObligationRepository,
    PaymentRepository,
    SqlCatalog,
    SqlWalletDirectory,
)

__all__ = [
    "Base",
    "Booking",
    "Dispute",
    "LedgerEvent",
    "PaymentRecord",
    "PayoutWallet",
    "ServiceListing",
    "SettlementObligation",
    "BookingRepository",
    "DisputeRepository",
    "EventRepository",
    "ObligationRepository",
    "PaymentRepository",
    "SqlCatalog",
    "SqlWalletDirectory",
    "get_async_session",
    "get_session_factory",
    "init_db",
    "close_db",
]

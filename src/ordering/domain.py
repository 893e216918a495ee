"""Ordering bounded context — order lifecycle and abandoned-commerce recovery.

Handles the alteration order state machine (creation, payment, collection,
alteration, delivery), payment records, saved carts, and the reminder ledger
driven by the abandonment sweep.
"""

from protean.domain import Domain

from ordering.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

ordering = Domain(name="ordering")

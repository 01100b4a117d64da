"""Production order repository - persistence boundary of the workflow core.

The orchestrator reaches the store only through these functions:

    load_order(order_id, session)
    save_order(order, expected_version, session)
    append_timeline_entry(entry, session)
    query_orders(order_filter, session)
    list_timeline(order_id, session)
    create_order(..., session)

Transaction boundary: every function inherits the caller's session. The
orchestrator calls save_order() and append_timeline_entry() inside a single
session_scope(), so an order update and its timeline entry are committed
together or not at all.

SQLAlchemy errors are translated here: StaleDataError becomes
ConcurrencyConflict, anything else becomes PersistenceError.
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from src.models import Priority, ProductionOrder, ProductionStatus, TimelineEntry
from src.services.dto import OrderFilter
from src.services.exceptions import (
    ConcurrencyConflict,
    OrderNotFound,
    PersistenceError,
)
from src.utils.datetime_utils import ensure_utc, utc_now


def load_order(order_id: int, session: Session) -> ProductionOrder:
    """
    Load a production order by ID.

    Args:
        order_id: Order ID to fetch
        session: Database session

    Returns:
        ProductionOrder instance attached to ``session``

    Raises:
        OrderNotFound: If no order has this ID
        PersistenceError: If the store cannot be read
    """
    try:
        order = session.get(ProductionOrder, order_id)
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to load production order {order_id}", e)
    if order is None:
        raise OrderNotFound(order_id)
    return order


def create_order(
    session: Session,
    quantity: int = 1,
    priority: Priority = Priority.NORMAL,
    reference: Optional[str] = None,
    unit_value: Decimal = Decimal("0.00"),
    estimated_completion=None,
    notes: Optional[str] = None,
    created_by: Optional[str] = None,
) -> ProductionOrder:
    """
    Insert a new order in PENDING.

    Returns:
        The new ProductionOrder with its ID and version assigned

    Raises:
        PersistenceError: If the insert fails
    """
    now = utc_now()
    order = ProductionOrder(
        reference=reference,
        quantity=quantity,
        unit_value=unit_value,
        priority=priority,
        status=ProductionStatus.PENDING,
        estimated_completion=ensure_utc(estimated_completion),
        notes=notes,
        created_at=now,
        updated_at=now,
        last_transition_at=now,
        last_modified_by=created_by,
    )
    try:
        session.add(order)
        session.flush()
    except SQLAlchemyError as e:
        raise PersistenceError("Failed to create production order", e)
    return order


def save_order(
    order: ProductionOrder, expected_version: Optional[int], session: Session
) -> ProductionOrder:
    """
    Persist changes to an order, guarded by its version counter.

    Args:
        order: Order loaded from ``session`` and modified in place
        expected_version: Version the caller based its change on. If given
            and different from the version read from the store, the save is
            refused. The mapper's version check still guards the window
            between load and flush when this is None.
        session: Database session

    Returns:
        The order, with ``version`` advanced by one

    Raises:
        ConcurrencyConflict: If the stored order changed since it was read
        PersistenceError: If the write fails or times out
    """
    # A failed flush expires the instance, so its attributes are read up front
    order_id = order.id
    if expected_version is not None and order.version != expected_version:
        raise ConcurrencyConflict(order_id, expected_version, order.version)
    try:
        session.flush()
    except StaleDataError:
        raise ConcurrencyConflict(order_id, expected_version)
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to save production order {order_id}", e)
    return order


def append_timeline_entry(entry: TimelineEntry, session: Session) -> TimelineEntry:
    """
    Append an entry to the timeline.

    Entries are only ever inserted; nothing in the code base updates or
    deletes them.

    Raises:
        PersistenceError: If the insert fails
    """
    order_id = entry.order_id
    try:
        session.add(entry)
        session.flush()
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to append timeline entry for order {order_id}", e)
    return entry


def list_timeline(order_id: int, session: Session) -> List[TimelineEntry]:
    """
    Return the timeline of an order ordered by (occurred_at, id).

    Raises:
        PersistenceError: If the store cannot be read
    """
    try:
        return (
            session.query(TimelineEntry)
            .filter(TimelineEntry.order_id == order_id)
            .order_by(TimelineEntry.occurred_at.asc(), TimelineEntry.id.asc())
            .all()
        )
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to read timeline of order {order_id}", e)


def query_orders(order_filter: OrderFilter, session: Session) -> List[ProductionOrder]:
    """
    Return orders matching ``order_filter`` ordered by ID.

    Raises:
        PersistenceError: If the store cannot be read
    """
    query = session.query(ProductionOrder)

    if order_filter.statuses is not None:
        query = query.filter(ProductionOrder.status.in_(list(order_filter.statuses)))

    if order_filter.assigned_to:
        query = query.filter(ProductionOrder.assigned_to == order_filter.assigned_to)

    window_from = ensure_utc(order_filter.window_from)
    window_to = ensure_utc(order_filter.window_to)
    if window_from is not None or window_to is not None:
        created_terms = []
        activity_terms = []
        if window_from is not None:
            created_terms.append(ProductionOrder.created_at >= window_from)
            activity_terms.append(ProductionOrder.last_transition_at >= window_from)
        if window_to is not None:
            created_terms.append(ProductionOrder.created_at <= window_to)
            activity_terms.append(ProductionOrder.last_transition_at <= window_to)
        query = query.filter(or_(and_(*created_terms), and_(*activity_terms)))

    overdue_at = ensure_utc(order_filter.overdue_at)
    if overdue_at is not None:
        query = query.filter(
            ProductionOrder.estimated_completion.isnot(None),
            ProductionOrder.estimated_completion < overdue_at,
        )

    try:
        return query.order_by(ProductionOrder.id.asc()).all()
    except SQLAlchemyError as e:
        raise PersistenceError("Failed to query production orders", e)

"""Relational persistence for orders, vendor reports and dashboard summaries.

``SqlAlchemyDataStore`` implements the same contract as the in-memory store on
top of three SQLAlchemy Core tables. Connection settings come from
``DATABASE_URL`` or the ``DB_*`` variables (``.env`` is honoured, see
``.env.example``); any SQLAlchemy URL works, so tests run against SQLite.

    from fulfillment.db_manager import SqlAlchemyDataStore, create_tables, get_engine

    engine = get_engine()
    create_tables(engine)
    store = SqlAlchemyDataStore(engine)
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Callable, Generator, Iterable, Sequence

from dotenv import load_dotenv
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    insert,
    select,
    text,
    update,
)
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from fulfillment.errors import DuplicateOrderError, OrderNotFoundError, StoreError
from fulfillment.models import (
    SUMMARY_ID,
    DashboardSummary,
    GiftCategory,
    Order,
    OrderStatus,
    VendorReport,
    parse_iso,
)
from fulfillment.store import MAX_BATCH_SIZE, ChangeNotifier, chunked


# Module-level engine cache for connection reuse
_engine: Engine | None = None

# Logger for database operations
_logger = logging.getLogger("simulation.db")

metadata = MetaData()

orders_table = Table(
    "orders",
    metadata,
    Column("order_id", String(64), primary_key=True),
    Column("vendor_id", String(64), nullable=False, index=True),
    Column("status", String(32), nullable=False, index=True),
    Column("created_at", DateTime(timezone=True), nullable=False, index=True),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("estimated_delivery", DateTime(timezone=True), nullable=False),
    Column("actual_delivery", DateTime(timezone=True), nullable=True),
    Column("gift_value", Integer, nullable=False),
    Column("gift_category", String(16), nullable=False),
    Column("is_rush", Boolean, nullable=False, default=False),
    Column("is_delayed", Boolean, nullable=False, default=False),
    Column("delivery_days", Integer, nullable=True),
    Column("is_backfilled", Boolean, nullable=False, default=False),
)

vendor_reports_table = Table(
    "vendor_reports",
    metadata,
    Column("vendor_id", String(64), primary_key=True),
    Column("report_date", Date, primary_key=True),
    Column("payload", JSON, nullable=False),
    Column("generated_at", DateTime(timezone=True), nullable=False),
)

dashboard_summaries_table = Table(
    "dashboard_summaries",
    metadata,
    Column("summary_id", String(32), primary_key=True),
    Column("report_date", Date, primary_key=True),
    Column("payload", JSON, nullable=False),
    Column("generated_at", DateTime(timezone=True), nullable=False),
)


REQUIRED_DB_VARS = ("DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD")

# Applied to PostgreSQL only; SQLite pools reject these arguments
POSTGRES_POOL_ARGS = {
    "pool_pre_ping": True,
    "pool_size": 5,
    "max_overflow": 10,
    "pool_recycle": 3600,
}


def database_url() -> str | URL:
    """``DATABASE_URL`` if set, else a PostgreSQL URL assembled from ``DB_*``.

    Raises:
        ValueError: If neither is configured completely.
    """
    load_dotenv()

    url = os.getenv("DATABASE_URL")
    if url:
        return url

    missing = [var for var in REQUIRED_DB_VARS if not os.getenv(var)]
    if missing:
        raise ValueError(f"Missing required environment variables: {', '.join(missing)}")

    return URL.create(
        "postgresql+psycopg2",
        username=os.environ["DB_USER"],
        password=os.environ["DB_PASSWORD"],
        host=os.environ["DB_HOST"],
        port=int(os.environ["DB_PORT"]),
        database=os.environ["DB_NAME"],
        query={"sslmode": os.getenv("DB_SSLMODE", "require")},
    )


def get_engine() -> Engine:
    """Process-wide engine, created on first use."""
    global _engine
    if _engine is None:
        url = make_url(database_url())
        pool_args = POSTGRES_POOL_ARGS if url.get_backend_name() == "postgresql" else {}
        _engine = create_engine(url, **pool_args)
        _logger.info(f"Database engine created for {url.render_as_string(hide_password=True)}")
    return _engine


def reset_engine() -> None:
    """Dispose the cached engine so the next get_engine() reconnects."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


@contextmanager
def session_scope(engine: Engine) -> Generator[Session, None, None]:
    """Transaction per block: commit on success, rollback on error."""
    session = sessionmaker(bind=engine)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def test_connection(engine: Engine | None = None) -> bool:
    """Test database connectivity."""
    try:
        with session_scope(engine or get_engine()) as session:
            session.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, ValueError) as e:
        _logger.warning(f"Database connectivity check failed: {e}")
        return False


def create_tables(engine: Engine | None = None) -> None:
    metadata.create_all(engine or get_engine())


def _utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _order_to_row(order: Order) -> dict[str, Any]:
    return {
        "order_id": order.order_id,
        "vendor_id": order.vendor_id,
        "status": order.status.value,
        "created_at": _utc(order.created_at),
        "updated_at": _utc(order.updated_at),
        "estimated_delivery": _utc(order.estimated_delivery),
        "actual_delivery": _utc(order.actual_delivery),
        "gift_value": order.gift_value,
        "gift_category": order.gift_category.value,
        "is_rush": order.is_rush,
        "is_delayed": order.is_delayed,
        "delivery_days": order.delivery_days,
        "is_backfilled": order.is_backfilled,
    }


def _row_to_order(row: Any) -> Order:
    m = row._mapping
    return Order(
        order_id=m["order_id"],
        vendor_id=m["vendor_id"],
        status=OrderStatus(m["status"]),
        created_at=parse_iso(m["created_at"]),
        updated_at=parse_iso(m["updated_at"]),
        estimated_delivery=parse_iso(m["estimated_delivery"]),
        actual_delivery=parse_iso(m["actual_delivery"]) if m["actual_delivery"] else None,
        gift_value=m["gift_value"],
        gift_category=GiftCategory(m["gift_category"]),
        is_rush=bool(m["is_rush"]),
        is_delayed=bool(m["is_delayed"]),
        delivery_days=m["delivery_days"],
        is_backfilled=bool(m["is_backfilled"]),
    )


def _fields_to_columns(fields: dict[str, Any]) -> dict[str, Any]:
    values = {}
    for key, value in fields.items():
        if isinstance(value, (OrderStatus, GiftCategory)):
            value = value.value
        elif isinstance(value, datetime):
            value = _utc(value)
        values[key] = value
    return values


class SqlAlchemyDataStore(ChangeNotifier):
    """Relational data store. Store failures surface as ``StoreError``."""

    def __init__(self, engine: Engine | None = None) -> None:
        super().__init__()
        self.engine = engine or get_engine()

    @contextmanager
    def _session(self, action: str) -> Generator[Session, None, None]:
        try:
            with session_scope(self.engine) as session:
                yield session
        except (DuplicateOrderError, OrderNotFoundError):
            raise
        except OperationalError as e:
            _logger.error(f"Database connection error during {action}: {e}")
            raise StoreError(f"Database connection error during {action}") from e
        except SQLAlchemyError as e:
            _logger.error(f"Database error during {action}: {e}")
            raise StoreError(f"Database error during {action}") from e

    def get_order(self, order_id: str) -> Order | None:
        with self._session("get_order") as session:
            row = session.execute(
                select(orders_table).where(orders_table.c.order_id == order_id)
            ).first()
            return _row_to_order(row) if row else None

    def query_orders_by_vendor(self, vendor_id: str, start: datetime, end: datetime) -> list[Order]:
        with self._session("query_orders_by_vendor") as session:
            rows = session.execute(
                select(orders_table).where(
                    orders_table.c.vendor_id == vendor_id,
                    orders_table.c.created_at >= _utc(start),
                    orders_table.c.created_at <= _utc(end),
                )
            ).all()
            return [_row_to_order(r) for r in rows]

    def query_orders_by_status(self, statuses: Iterable[OrderStatus]) -> list[Order]:
        values = [s.value for s in statuses]
        with self._session("query_orders_by_status") as session:
            rows = session.execute(
                select(orders_table).where(orders_table.c.status.in_(values))
            ).all()
            return [_row_to_order(r) for r in rows]

    def scan_orders(self, predicate: Callable[[Order], bool] | None = None) -> list[Order]:
        with self._session("scan_orders") as session:
            rows = session.execute(select(orders_table)).all()
            orders = [_row_to_order(r) for r in rows]
        if predicate is None:
            return orders
        return [o for o in orders if predicate(o)]

    def put_order_if_absent(self, order: Order) -> None:
        try:
            with self._session("put_order_if_absent") as session:
                exists = session.execute(
                    select(orders_table.c.order_id).where(orders_table.c.order_id == order.order_id)
                ).first()
                if exists:
                    raise DuplicateOrderError(order.order_id)
                session.execute(insert(orders_table).values(**_order_to_row(order)))
        except StoreError as e:
            if isinstance(e.__cause__, IntegrityError):
                raise DuplicateOrderError(order.order_id) from e
            raise
        self._notify(order.order_id, "insert")

    def update_order(self, order_id: str, fields: dict[str, Any]) -> Order:
        with self._session("update_order") as session:
            result = session.execute(
                update(orders_table)
                .where(orders_table.c.order_id == order_id)
                .values(**_fields_to_columns(fields))
            )
            if result.rowcount == 0:
                raise OrderNotFoundError(order_id)
            row = session.execute(
                select(orders_table).where(orders_table.c.order_id == order_id)
            ).first()
            updated = _row_to_order(row)
        self._notify(order_id, "update")
        return updated

    def batch_write_orders(self, orders: Sequence[Order], batch_size: int = MAX_BATCH_SIZE) -> int:
        """Write orders chunk by chunk, one transaction per chunk.

        Returns:
            Number of chunks written. On failure, chunks committed before the
            failing one stay in place and the error propagates.
        """
        batches = 0
        for batch in chunked(orders, min(batch_size, MAX_BATCH_SIZE)):
            ids = [o.order_id for o in batch]
            with self._session(f"batch_write_orders (batch {batches + 1})") as session:
                session.execute(delete(orders_table).where(orders_table.c.order_id.in_(ids)))
                session.execute(insert(orders_table), [_order_to_row(o) for o in batch])
            batches += 1
            for order_id in ids:
                self._notify(order_id, "insert")
        return batches

    def put_vendor_report(self, report: VendorReport) -> None:
        with self._session("put_vendor_report") as session:
            session.execute(
                delete(vendor_reports_table).where(
                    vendor_reports_table.c.vendor_id == report.vendor_id,
                    vendor_reports_table.c.report_date == report.report_date,
                )
            )
            session.execute(
                insert(vendor_reports_table).values(
                    vendor_id=report.vendor_id,
                    report_date=report.report_date,
                    payload=report.to_dict(),
                    generated_at=_utc(report.generated_at),
                )
            )

    def put_dashboard_summary(self, summary: DashboardSummary) -> None:
        with self._session("put_dashboard_summary") as session:
            session.execute(
                delete(dashboard_summaries_table).where(
                    dashboard_summaries_table.c.summary_id == summary.summary_id,
                    dashboard_summaries_table.c.report_date == summary.report_date,
                )
            )
            session.execute(
                insert(dashboard_summaries_table).values(
                    summary_id=summary.summary_id,
                    report_date=summary.report_date,
                    payload=summary.to_dict(),
                    generated_at=_utc(summary.generated_at),
                )
            )

    def get_vendor_report(self, vendor_id: str, report_date: date | None = None) -> VendorReport | None:
        query = select(vendor_reports_table.c.payload).where(vendor_reports_table.c.vendor_id == vendor_id)
        if report_date is not None:
            query = query.where(vendor_reports_table.c.report_date == report_date)
        query = query.order_by(vendor_reports_table.c.report_date.desc()).limit(1)
        with self._session("get_vendor_report") as session:
            payload = session.execute(query).scalar_one_or_none()
        return VendorReport.from_dict(payload) if payload else None

    def get_dashboard_summary(self, report_date: date | None = None) -> DashboardSummary | None:
        query = select(dashboard_summaries_table.c.payload).where(
            dashboard_summaries_table.c.summary_id == SUMMARY_ID
        )
        if report_date is not None:
            query = query.where(dashboard_summaries_table.c.report_date == report_date)
        query = query.order_by(dashboard_summaries_table.c.report_date.desc()).limit(1)
        with self._session("get_dashboard_summary") as session:
            payload = session.execute(query).scalar_one_or_none()
        return DashboardSummary.from_dict(payload) if payload else None

"""
Simulation Journal
Logs every simulated day to TimescaleDB for post-run analysis.
Implements batching, fallback to CSV, and offline runs.
"""

import csv
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import psycopg2
from psycopg2.extras import execute_batch

from news_schema import NewsRecord
from security_schema import Security

logger = logging.getLogger(__name__)


PRICE_COLUMNS = (
    "day", "calendar", "symbol", "price", "fair_value",
    "sentiment_offset", "volatility_boost", "trading_halted", "phases",
)

NEWS_COLUMNS = (
    "day", "related_stock", "news_type", "phase", "sentiment",
    "headline", "probability", "is_gold_standard",
)


def price_row(day: int, label: str, security: Security) -> Dict[str, Any]:
    """One daily snapshot row, native Python types only."""
    phases = ",".join(f"{name}={state.phase}" for name, state in sorted(security.states.items()))
    return {
        "day": int(day),
        "calendar": label,
        "symbol": security.symbol,
        "price": float(security.price),
        "fair_value": float(security.fair_value),
        "sentiment_offset": float(security.sentiment_offset),
        "volatility_boost": float(security.volatility_boost),
        "trading_halted": bool(security.trading_halted),
        "phases": phases,
    }


def news_row(record: NewsRecord) -> Dict[str, Any]:
    row = record.to_row()
    row["probability"] = float(row["probability"]) if row["probability"] is not None else None
    return {column: row.get(column) for column in NEWS_COLUMNS}


class SimulationJournal:
    """
    Logs daily price snapshots and headlines to a database.

    Features:
    - Batch writes via execute_batch
    - Automatic reconnection on DB failure
    - CSV fallback if DB unavailable (or connect=False)
    - Buffers dropped only after a successful write
    """

    PRICE_SQL = """
        INSERT INTO sim_price_log (
            day, calendar, symbol, price, fair_value,
            sentiment_offset, volatility_boost, trading_halted, phases
        ) VALUES (
            %(day)s, %(calendar)s, %(symbol)s, %(price)s, %(fair_value)s,
            %(sentiment_offset)s, %(volatility_boost)s, %(trading_halted)s, %(phases)s
        )
    """

    NEWS_SQL = """
        INSERT INTO sim_news_log (
            day, related_stock, news_type, phase, sentiment,
            headline, probability, is_gold_standard
        ) VALUES (
            %(day)s, %(related_stock)s, %(news_type)s, %(phase)s, %(sentiment)s,
            %(headline)s, %(probability)s, %(is_gold_standard)s
        )
    """

    def __init__(
        self,
        db_host: str = "localhost",
        db_port: int = 5432,
        db_name: str = "market_sim_db",
        db_user: str = "market_sim",
        db_password: str = "market_simpass",
        batch_size: int = 100,
        csv_fallback_dir: Optional[Path] = None,
        connect: bool = True,
    ):
        """
        Initialize simulation journal.

        Args:
            db_host: Database host
            db_port: Database port
            db_name: Database name
            db_user: Database user
            db_password: Database password
            batch_size: Number of price rows to buffer before writing
            csv_fallback_dir: Directory for CSV fallback if DB fails
            connect: False skips the database entirely (CSV only)
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")

        self.db_config = {
            "host": db_host,
            "port": db_port,
            "database": db_name,
            "user": db_user,
            "password": db_password,
        }

        self.batch_size = batch_size
        self.csv_fallback_dir = Path(csv_fallback_dir) if csv_fallback_dir else None

        # Buffers for batch writing
        self.price_buffer: List[Dict[str, Any]] = []
        self.news_buffer: List[Dict[str, Any]] = []

        # Connection management
        self.conn: Optional[psycopg2.extensions.connection] = None
        self.db_available = False

        # Statistics
        self.write_count = 0
        self.total_prices_logged = 0
        self.total_news_logged = 0
        self.days_logged = 0

        if connect:
            self._connect()

        if self.csv_fallback_dir:
            self.csv_fallback_dir.mkdir(parents=True, exist_ok=True)

    def _connect(self):
        """Establish database connection."""
        try:
            self.conn = psycopg2.connect(**self.db_config)
            self.db_available = True
        except psycopg2.Error as e:
            logger.warning(f"Failed to connect to database: {e}")
            logger.warning("Will fallback to CSV logging if configured")
            self.db_available = False
            self.conn = None

    def _reconnect(self):
        if self.conn is not None:
            try:
                self.conn.close()
            except psycopg2.Error as e:
                logger.debug(f"Ignoring error while closing stale connection: {e}")
        self._connect()

    @contextmanager
    def _get_cursor(self):
        """Context manager for database cursor with auto-reconnect."""
        if not self.db_available:
            raise RuntimeError("Database not available")

        if self.conn is None or self.conn.closed:
            self._reconnect()
            if self.conn is None:
                raise RuntimeError("Database not available")

        try:
            cursor = self.conn.cursor()
            yield cursor
            self.conn.commit()
            cursor.close()
        except psycopg2.Error as e:
            logger.error(f"Database error: {e}")
            self.conn.rollback()
            raise

    # === Recording ===

    def record_day(self, day: int, label: str, securities: Sequence[Security], news: Sequence[NewsRecord]):
        """
        Buffer one finished day.

        Args:
            day: Absolute day number
            label: Calendar label (e.g. Y1M1D1)
            securities: Securities after the price step
            news: The day's headlines
        """
        for security in securities:
            self.price_buffer.append(price_row(day, label, security))
        for record in news:
            self.news_buffer.append(news_row(record))
        self.days_logged += 1

        if len(self.price_buffer) >= self.batch_size:
            self.flush_all()

    # === Flushing ===

    def _flush(self, buffer: List[Dict[str, Any]], sql: str, csv_name: str) -> int:
        """
        Write one buffer: database first, CSV on failure.

        Returns:
            Number of rows written (0 if nothing could be written)
        """
        if not buffer:
            return 0

        if self.db_available:
            try:
                with self._get_cursor() as cursor:
                    execute_batch(cursor, sql, buffer)
                written = len(buffer)
                buffer.clear()
                self.write_count += 1
                return written
            except (psycopg2.Error, RuntimeError) as e:
                logger.error(f"Failed to flush {csv_name}: {e}")
                self.db_available = False

        if self.csv_fallback_dir is None:
            logger.warning(f"Dropping {len(buffer)} {csv_name} rows: no database and no CSV fallback")
            buffer.clear()
            return 0

        try:
            written = self._write_csv(buffer, csv_name)
        except OSError as e:
            logger.error(f"CSV fallback also failed: {e}")
            return 0
        buffer.clear()
        self.write_count += 1
        return written

    def _write_csv(self, rows: List[Dict[str, Any]], csv_name: str) -> int:
        csv_path = self.csv_fallback_dir / f"{csv_name}.csv"
        file_exists = csv_path.exists()

        with open(csv_path, "a", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=list(rows[0].keys()))
            if not file_exists:
                writer.writeheader()
            writer.writerows(rows)
        return len(rows)

    def flush_all(self):
        """Force flush all buffers."""
        self.total_prices_logged += self._flush(self.price_buffer, self.PRICE_SQL, "sim_price_log")
        self.total_news_logged += self._flush(self.news_buffer, self.NEWS_SQL, "sim_news_log")

    def close(self):
        """Flush buffers and close connection."""
        self.flush_all()

        if self.conn is not None:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self) -> str:
        return (
            f"SimulationJournal(\n"
            f"  db_available={self.db_available},\n"
            f"  days_logged={self.days_logged},\n"
            f"  total_prices_logged={self.total_prices_logged},\n"
            f"  total_news_logged={self.total_news_logged},\n"
            f"  write_count={self.write_count}\n"
            f")"
        )

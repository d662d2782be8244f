# news_sink.py
# Append-only collector for the day's headlines
# No ranking. No dedup. Order is emission order.

import dataclasses
import logging
from typing import Callable, Iterator, List, Optional

from news_schema import NewsRecord

logger = logging.getLogger(__name__)


class NewsSink:
    """
    Collects NewsRecords in the order phenomena emit them.

    The orchestrator calls start_day() each tick; today() returns only
    the current day's records, history keeps everything up to max_records.
    """

    def __init__(self, max_records: int = 5000, listener: Optional[Callable[[NewsRecord], None]] = None):
        if max_records < 1:
            raise ValueError(f"max_records must be >= 1, got {max_records}")

        self.max_records = max_records
        self.listener = listener
        self.current_day = 0
        self.records: List[NewsRecord] = []
        self._today_start = 0

    def start_day(self, day: int) -> None:
        self.current_day = day
        self._today_start = len(self.records)

    def push(self, record: NewsRecord) -> NewsRecord:
        """
        Stamp the record with the current day and store it.

        Returns:
            The stamped record (a copy; NewsRecord is frozen)
        """
        stamped = dataclasses.replace(record, day=self.current_day)
        self.records.append(stamped)

        if len(self.records) > self.max_records:
            overflow = len(self.records) - self.max_records
            del self.records[:overflow]
            self._today_start = max(0, self._today_start - overflow)

        logger.debug(f"[day {self.current_day}] {stamped.news_type}: {stamped.headline}")

        if self.listener is not None:
            self.listener(stamped)
        return stamped

    def today(self) -> List[NewsRecord]:
        return self.records[self._today_start:]

    def by_type(self, news_type: str) -> List[NewsRecord]:
        return [record for record in self.records if record.news_type == news_type]

    def for_stock(self, symbol: str) -> List[NewsRecord]:
        return [record for record in self.records if record.related_stock == symbol]

    def clear(self) -> None:
        self.records = []
        self._today_start = 0

    def __iter__(self) -> Iterator[NewsRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

from __future__ import annotations

import logging
from typing import Any, Callable

from ..schemas import LedgerEntry, Statistics, SubmissionEvent
from ..utils import format_timestamp
from .storage import KeyValueStore

ACTIVITY_LOG_KEY = 'activityLog'
STATISTICS_KEY = 'statistics'
MAX_LOG_ENTRIES = 10

logger = logging.getLogger(__name__)


class ActivityLedger:
  def __init__(
    self,
    store: KeyValueStore,
    max_entries: int = MAX_LOG_ENTRIES,
    clock: Callable[[], str] = format_timestamp,
  ) -> None:
    self.store = store
    self.max_entries = max_entries
    self._clock = clock

  async def append(self, entry: LedgerEntry) -> LedgerEntry:
    if not entry.timestamp:
      entry = entry.model_copy(update={'timestamp': self._clock()})
    record = entry.to_wire()

    def prepend(log: list[dict[str, Any]]) -> list[dict[str, Any]]:
      return [record, *(log or [])][: self.max_entries]

    await self.store.update(ACTIVITY_LOG_KEY, prepend, default=[])
    logger.info('Activity logged: [%s] %s', entry.status, entry.message)
    return entry

  async def read(self) -> list[LedgerEntry]:
    stored = await self.store.get([ACTIVITY_LOG_KEY])
    entries: list[LedgerEntry] = []
    for raw in stored.get(ACTIVITY_LOG_KEY) or []:
      try:
        entries.append(LedgerEntry.model_validate(raw))
      except ValueError as exc:
        logger.warning('Skipping malformed activity entry %r: %s', raw, exc)
    return entries

  async def record_push(self, submission: SubmissionEvent) -> Statistics:
    now = self._clock()

    def increment(raw: dict[str, Any] | None) -> dict[str, Any]:
      statistics = Statistics.model_validate(raw or {})
      statistics.total_solved += 1
      statistics.by_difficulty[submission.difficulty] += 1
      if submission.language:
        statistics.by_language[submission.language] = statistics.by_language.get(submission.language, 0) + 1
      if not statistics.first_push:
        statistics.first_push = now
      statistics.last_push = now
      return statistics.to_wire()

    updated = await self.store.update(STATISTICS_KEY, increment, default={})
    return Statistics.model_validate(updated)

  async def read_statistics(self) -> Statistics:
    stored = await self.store.get([STATISTICS_KEY])
    return Statistics.model_validate(stored.get(STATISTICS_KEY) or {})

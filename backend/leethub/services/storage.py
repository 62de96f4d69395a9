from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Iterable

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(os.getenv('LEETHUB_DATA_DIR', str(Path.home() / '.leethub')))
STATE_FILENAME = 'state.json'


class KeyValueStore:
  """Process-wide key/value state, kept in one JSON document when a directory is given."""

  def __init__(self, data_dir: Path | None = None) -> None:
    self._path = Path(data_dir) / STATE_FILENAME if data_dir else None
    self._lock = asyncio.Lock()
    self._data: dict[str, Any] = self._load()

  @property
  def path(self) -> Path | None:
    return self._path

  def _load(self) -> dict[str, Any]:
    if self._path is None or not self._path.exists():
      return {}
    try:
      with open(self._path, 'r', encoding='utf-8') as handle:
        payload = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
      logger.warning('Could not read persisted state from %s: %s', self._path, exc)
      return {}
    if not isinstance(payload, dict):
      logger.warning('Ignoring persisted state in %s: expected an object', self._path)
      return {}
    return payload

  def _flush(self) -> None:
    if self._path is None:
      return
    self._path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = self._path.with_suffix('.tmp')
    with open(tmp_path, 'w', encoding='utf-8') as handle:
      json.dump(self._data, handle, indent=2, sort_keys=True)
    os.replace(tmp_path, self._path)

  async def get(self, keys: Iterable[str] | None = None) -> dict[str, Any]:
    async with self._lock:
      if keys is None:
        return copy.deepcopy(self._data)
      return {key: copy.deepcopy(self._data[key]) for key in keys if key in self._data}

  async def set(self, values: dict[str, Any]) -> None:
    async with self._lock:
      self._data.update(copy.deepcopy(values))
      self._flush()

  async def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
    async with self._lock:
      current = copy.deepcopy(self._data.get(key, default))
      updated = fn(current)
      self._data[key] = copy.deepcopy(updated)
      self._flush()
      return updated

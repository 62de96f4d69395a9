from __future__ import annotations

import logging
import os
from typing import Any, Awaitable, Callable, Protocol

import httpx

LEETHUB_HOST_URL = os.getenv('LEETHUB_HOST_URL', 'http://127.0.0.1:8000')
MESSAGES_PATH = '/api/messages'

logger = logging.getLogger(__name__)


class ChannelClosedError(RuntimeError):
  """Raised when the background context cannot be reached or answers garbage."""


class MessageChannel(Protocol):
  async def send(self, message: dict[str, Any]) -> dict[str, Any]: ...


class LocalMessageChannel:
  def __init__(self, handler: Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]) -> None:
    self._handler = handler

  async def send(self, message: dict[str, Any]) -> dict[str, Any]:
    return await self._handler(message)


class HttpMessageChannel:
  def __init__(
    self,
    base_url: str | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    timeout: float = 60.0,
  ) -> None:
    self.base_url = base_url or LEETHUB_HOST_URL
    self._transport = transport
    self._timeout = timeout

  async def send(self, message: dict[str, Any]) -> dict[str, Any]:
    try:
      async with httpx.AsyncClient(base_url=self.base_url, timeout=self._timeout, transport=self._transport) as client:
        response = await client.post(MESSAGES_PATH, json=message)
    except httpx.TransportError as exc:
      raise ChannelClosedError(f'Background host unreachable at {self.base_url}: {exc}') from exc

    try:
      payload = response.json()
    except ValueError as exc:
      raise ChannelClosedError(
        f'Background host returned a non-JSON response (status {response.status_code}).'
      ) from exc

    if not isinstance(payload, dict):
      raise ChannelClosedError('Background host returned an unexpected response shape.')
    return payload

from __future__ import annotations

import logging
import uuid
from collections import OrderedDict, deque

from ..schemas import Notification

MAX_PENDING_NOTIFICATIONS = 50

logger = logging.getLogger(__name__)


class NotificationDispatcher:
  """Keeps recent notifications and the URL each one opens when clicked."""

  def __init__(self, max_pending: int = MAX_PENDING_NOTIFICATIONS) -> None:
    self.max_pending = max_pending
    self._urls: OrderedDict[str, str] = OrderedDict()
    self.outbox: deque[Notification] = deque(maxlen=max_pending)

  def notify(self, title: str, message: str, url: str | None = None, *, enabled: bool = True) -> str | None:
    if not enabled:
      logger.debug('Notifications disabled, dropping "%s"', title)
      return None

    notification = Notification(id=uuid.uuid4().hex[:12], title=title, message=message, url=url)
    self.outbox.append(notification)
    if url:
      self._urls[notification.id] = url
      while len(self._urls) > self.max_pending:
        self._urls.popitem(last=False)

    logger.info('Notification %s: %s - %s', notification.id, title, message)
    return notification.id

  def open(self, notification_id: str) -> str | None:
    return self._urls.pop(notification_id, None)

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from ..schemas import LedgerEntry, PushResult, Settings, SubmissionEvent
from ..utils import (
  build_commit_message,
  build_file_path,
  contents_are_equal,
  render_commit_template,
  safe_b64_encode,
)
from .github import GitHubAPIError, GitHubClient, describe_error
from .ledger import ActivityLedger
from .notifications import NotificationDispatcher
from .settings import ConfigurationError, load_settings, require_push_settings
from .storage import KeyValueStore

MAX_RETRIES = 3
RETRY_DELAY = 2.0

T = TypeVar('T')

Sleep = Callable[[float], Awaitable[None]]
ClientFactory = Callable[[Settings], GitHubClient]

logger = logging.getLogger(__name__)


async def retry_operation(
  operation: Callable[[], Awaitable[T]],
  max_attempts: int = MAX_RETRIES,
  delay: float = RETRY_DELAY,
  sleep: Sleep = asyncio.sleep,
) -> T:
  for attempt in range(1, max_attempts + 1):
    try:
      return await operation()
    except GitHubAPIError as exc:
      logger.warning('Attempt %s/%s failed: %s', attempt, max_attempts, exc)
      if not exc.retryable or attempt == max_attempts:
        raise
      await sleep(delay * attempt)
  raise ValueError(f'max_attempts must be at least 1, got {max_attempts}')


def default_client_factory(settings: Settings) -> GitHubClient:
  return GitHubClient(
    token=settings.github_token or '',
    owner=settings.github_owner or '',
    repo=settings.github_repo or '',
    branch=settings.github_branch,
  )


def commit_message_for(event: SubmissionEvent, template: str = '') -> str:
  if template.strip():
    try:
      return render_commit_template(
        template,
        {
          'title': event.title,
          'language': event.language,
          'difficulty': event.difficulty,
          'url': event.problem_url,
          'runtime': event.runtime,
          'memory': event.memory,
          'accepted_at': event.accepted_at,
        },
      )
    except (KeyError, IndexError, ValueError) as exc:
      logger.warning('Ignoring invalid commit message template %r: %s', template, exc)

  return build_commit_message(
    title=event.title,
    language=event.language,
    problem_url=event.problem_url,
    runtime=event.runtime,
    memory=event.memory,
    accepted_at=event.accepted_at,
  )


class PushOrchestrator:
  def __init__(
    self,
    store: KeyValueStore,
    ledger: ActivityLedger | None = None,
    notifications: NotificationDispatcher | None = None,
    *,
    client_factory: ClientFactory = default_client_factory,
    max_retries: int = MAX_RETRIES,
    retry_delay: float = RETRY_DELAY,
    sleep: Sleep = asyncio.sleep,
  ) -> None:
    self.store = store
    self.ledger = ledger or ActivityLedger(store)
    self.notifications = notifications or NotificationDispatcher()
    self._client_factory = client_factory
    self.max_retries = max_retries
    self.retry_delay = retry_delay
    self._sleep = sleep

  async def submit(self, event: SubmissionEvent) -> PushResult:
    missing = event.missing_fields()
    if missing:
      logger.warning('Dropping submission without %s', ', '.join(missing))
      return PushResult(status='error', error=f"Submission is missing required data: {', '.join(missing)}")

    logger.info('Processing accepted submission: %s', event.title)
    previous_level = logger.level
    try:
      settings = await load_settings(self.store)
      require_push_settings(settings)
      if settings.debug_mode:
        logger.setLevel(logging.DEBUG)
      result = await self._push(event, settings)
    except ConfigurationError as exc:
      return await self._fail(event, str(exc))
    except GitHubAPIError as exc:
      return await self._fail(event, describe_error(exc))
    except Exception as exc:  # noqa: BLE001
      logger.exception('Unexpected error while pushing %s', event.title)
      return await self._fail(event, f'Unexpected error while pushing to GitHub: {exc}')
    finally:
      logger.setLevel(previous_level)

    if result.status == 'skipped':
      await self._record(
        LedgerEntry(
          status='skipped',
          message=f'{event.title} - Content unchanged',
          problem_title=event.title,
          difficulty=event.difficulty,
          language=event.language,
        )
      )
      return result

    await self._record(
      LedgerEntry(
        status='success',
        message=f'Pushed: {event.title}',
        problem_title=event.title,
        difficulty=event.difficulty,
        language=event.language,
        url=result.url or event.problem_url,
      )
    )
    self.notifications.notify(
      'LeetHub Success',
      f'{event.title} pushed to GitHub!',
      result.url,
      enabled=settings.notifications_enabled,
    )
    try:
      await self.ledger.record_push(event)
    except OSError:
      logger.exception('Could not update statistics for %s', event.title)
    return result

  async def _push(self, event: SubmissionEvent, settings: Settings) -> PushResult:
    path = build_file_path(event.title, event.difficulty, event.language, settings.github_root_folder)
    logger.debug('Target file path: %s', path)
    content_b64 = safe_b64_encode(event.code)

    async with self._client_factory(settings) as client:
      remote = await retry_operation(
        lambda: client.get_file(path),
        max_attempts=self.max_retries,
        delay=self.retry_delay,
        sleep=self._sleep,
      )
      logger.debug('Existing file SHA: %s', remote.sha if remote else 'None (new file)')

      if remote and contents_are_equal(remote.content, content_b64):
        logger.info('Content unchanged for %s, skipping push', path)
        return PushResult(status='skipped', message='Content unchanged')

      message = commit_message_for(event, settings.commit_message_template)
      sha = remote.sha if remote else None
      response: dict[str, Any] = await retry_operation(
        lambda: client.put_file(path, content_b64, message, sha),
        max_attempts=self.max_retries,
        delay=self.retry_delay,
        sleep=self._sleep,
      )

    url = (response.get('content') or {}).get('html_url')
    logger.info('Pushed %s to %s/%s', path, settings.github_owner, settings.github_repo)
    return PushResult(status='success', url=url, message='Successfully pushed to GitHub')

  async def _fail(self, event: SubmissionEvent, error: str) -> PushResult:
    logger.error('Push failed for %s: %s', event.title, error)
    await self._record(
      LedgerEntry(
        status='error',
        message=f'Failed: {event.title} - {error}',
        problem_title=event.title,
        difficulty=event.difficulty,
        language=event.language,
        error=error,
      )
    )
    return PushResult(status='error', error=error)

  async def _record(self, entry: LedgerEntry) -> None:
    try:
      await self.ledger.append(entry)
    except OSError:
      logger.exception('Could not write activity entry "%s"', entry.message)

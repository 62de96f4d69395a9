from __future__ import annotations

import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol, Sequence

from ..schemas import PageSnapshot, SubmissionEvent, SubmissionMessage, VerdictNode
from ..utils import format_timestamp
from .channel import ChannelClosedError, MessageChannel

POLL_INTERVAL = 1.0
SETTLE_DELAY = 2.0

PROBLEM_PAGE_MARKER = 'leetcode.com/problems/'
HISTORY_VIEW_MARKER = '/submissions/'
ACCEPTED_TEXT = 'Accepted'

FAILURE_KEYWORDS: tuple[str, ...] = (
  'Wrong Answer',
  'Time Limit Exceeded',
  'Runtime Error',
  'Compilation Error',
  'Memory Limit Exceeded',
)
NODE_FAILURE_MARKERS: tuple[str, ...] = ('Wrong', 'Error', 'Exceeded', 'Failed', 'Time Limit', 'Memory Limit')
SUBMISSION_INDICATORS: tuple[str, ...] = (
  'beats',
  'Beats',
  'faster than',
  'less than',
  'Runtime Distribution',
  'Memory Distribution',
)
MANDATORY_FIELDS: tuple[str, ...] = ('title', 'language', 'code')

PROBLEM_NUMBER_PATTERN = re.compile(r'^\d+\.\s*')
PROBLEM_SLUG_PATTERN = re.compile(r'/problems/([^/?#]+)')
RUNTIME_PATTERN = re.compile(r'(\d+)\s*ms')
MEMORY_PATTERN = re.compile(r'([\d.]+)\s*MB')

Strategy = Callable[[PageSnapshot], Optional[str]]
Sleep = Callable[[float], Awaitable[None]]

logger = logging.getLogger(__name__)


class PageVerdict(str, Enum):
  NO_RESULT = 'no-result'
  TEST_RUN = 'test-run'
  ACCEPTED = 'accepted'
  FAILED = 'failed'


class DetectionState(str, Enum):
  IDLE = 'idle'
  SAMPLING = 'sampling'
  CANDIDATE = 'candidate'
  DEBOUNCED = 'debounced'
  EXTRACTING = 'extracting'
  EMITTED = 'emitted'


# A pass claims SAMPLING before its first await; manual pushes go from SAMPLING to EXTRACTING.
TRANSITIONS: dict[DetectionState, frozenset[DetectionState]] = {
  DetectionState.IDLE: frozenset({DetectionState.SAMPLING}),
  DetectionState.SAMPLING: frozenset({DetectionState.IDLE, DetectionState.CANDIDATE, DetectionState.EXTRACTING}),
  DetectionState.CANDIDATE: frozenset({DetectionState.IDLE, DetectionState.DEBOUNCED}),
  DetectionState.DEBOUNCED: frozenset({DetectionState.IDLE, DetectionState.EXTRACTING}),
  DetectionState.EXTRACTING: frozenset({DetectionState.IDLE, DetectionState.EMITTED}),
  DetectionState.EMITTED: frozenset({DetectionState.IDLE}),
}


class IllegalTransitionError(RuntimeError):
  """Raised when the detection state machine is driven along an undefined edge."""


class PageSource(Protocol):
  async def snapshot(self) -> PageSnapshot: ...


def _has_failure_marker(text: str) -> bool:
  return any(marker in text for marker in NODE_FAILURE_MARKERS)


def find_accepted_verdict(snapshot: PageSnapshot) -> VerdictNode | None:
  for node in snapshot.verdict_nodes:
    text = node.text.strip()
    if text != ACCEPTED_TEXT:
      continue
    if _has_failure_marker(text) or _has_failure_marker(node.container_text):
      continue
    return node
  return None


def classify_page(snapshot: PageSnapshot) -> PageVerdict:
  if HISTORY_VIEW_MARKER in snapshot.url:
    return PageVerdict.NO_RESULT

  body = snapshot.body_text
  if any(keyword in body for keyword in FAILURE_KEYWORDS):
    return PageVerdict.FAILED

  if find_accepted_verdict(snapshot) is None:
    return PageVerdict.NO_RESULT

  # Test runs also print "Accepted" per case but never a percentile.
  if not any(indicator in body for indicator in SUBMISSION_INDICATORS):
    return PageVerdict.TEST_RUN
  return PageVerdict.ACCEPTED


def title_from_heading(snapshot: PageSnapshot) -> str | None:
  text = (snapshot.title_text or '').strip()
  return PROBLEM_NUMBER_PATTERN.sub('', text) or None


def title_from_url(snapshot: PageSnapshot) -> str | None:
  match = PROBLEM_SLUG_PATTERN.search(snapshot.url)
  if not match:
    return None
  return ' '.join(word[:1].upper() + word[1:] for word in match.group(1).split('-') if word) or None


def difficulty_from_label(snapshot: PageSnapshot) -> str | None:
  text = (snapshot.difficulty_text or '').strip().lower()
  for bucket in ('Easy', 'Medium', 'Hard'):
    if bucket.lower() in text:
      return bucket
  return None


def language_from_selector(snapshot: PageSnapshot) -> str | None:
  text = (snapshot.language_text or '').strip()
  if text and len(text) < 20:
    return text
  return None


def code_from_editor(snapshot: PageSnapshot) -> str | None:
  for candidate in snapshot.code_candidates:
    if candidate and candidate.strip() and len(candidate) > 10:
      return candidate
  return None


def problem_url_from_location(snapshot: PageSnapshot) -> str | None:
  return snapshot.url.split('?')[0] or None


def runtime_from_text(snapshot: PageSnapshot) -> str | None:
  match = RUNTIME_PATTERN.search(snapshot.body_text)
  return f'{match.group(1)}ms' if match else None


def memory_from_text(snapshot: PageSnapshot) -> str | None:
  match = MEMORY_PATTERN.search(snapshot.body_text)
  return f'{match.group(1)}MB' if match else None


DEFAULT_STRATEGIES: dict[str, tuple[Strategy, ...]] = {
  'title': (title_from_heading, title_from_url),
  'difficulty': (difficulty_from_label,),
  'language': (language_from_selector,),
  'code': (code_from_editor,),
  'problem_url': (problem_url_from_location,),
  'runtime': (runtime_from_text,),
  'memory': (memory_from_text,),
}


def extract_fields(snapshot: PageSnapshot, strategies: Mapping[str, Sequence[Strategy]]) -> dict[str, str | None]:
  fields: dict[str, str | None] = {}
  for field, field_strategies in strategies.items():
    value: str | None = None
    for strategy in field_strategies:
      try:
        value = strategy(snapshot)
      except Exception as exc:  # noqa: BLE001
        logger.warning('Error extracting %s with %s: %s', field, getattr(strategy, '__name__', strategy), exc)
        continue
      if value:
        break
    fields[field] = value
    logger.debug('Extracted %s: %r', field, value if field != 'code' else f'<{len(value or "")} chars>')
  return fields


def build_event(fields: Mapping[str, str | None], accepted_at: str) -> SubmissionEvent | None:
  missing = [field for field in MANDATORY_FIELDS if not (fields.get(field) or '').strip()]
  if missing:
    logger.warning('Missing required data (%s), dropping submission', ', '.join(missing))
    return None

  return SubmissionEvent(
    title=fields['title'],
    difficulty=fields.get('difficulty') or 'Unknown',
    language=fields['language'],
    code=fields['code'],
    problem_url=fields.get('problem_url'),
    runtime=fields.get('runtime'),
    memory=fields.get('memory'),
    accepted_at=accepted_at,
  )


class DetectionEngine:
  def __init__(
    self,
    page: PageSource,
    channel: MessageChannel,
    *,
    poll_interval: float = POLL_INTERVAL,
    settle_delay: float = SETTLE_DELAY,
    strategies: Mapping[str, Sequence[Strategy]] | None = None,
    sleep: Sleep = asyncio.sleep,
    clock: Callable[[], float] = time.time,
  ) -> None:
    self.page = page
    self.channel = channel
    self.poll_interval = poll_interval
    self.settle_delay = settle_delay
    self.strategies = strategies or DEFAULT_STRATEGIES
    self.state = DetectionState.IDLE
    self.last_submission_id: str | None = None
    self.last_response: dict[str, Any] | None = None
    self._armed = True
    self._running = False
    self._sleep = sleep
    self._clock = clock

  def _transition(self, target: DetectionState) -> None:
    if target not in TRANSITIONS[self.state]:
      raise IllegalTransitionError(f'Cannot move from {self.state.value} to {target.value}')
    logger.debug('Detection state %s -> %s', self.state.value, target.value)
    self.state = target

  def _reset(self) -> None:
    if self.state is not DetectionState.IDLE:
      self._transition(DetectionState.IDLE)

  async def run(self) -> None:
    snapshot = await self.page.snapshot()
    if PROBLEM_PAGE_MARKER not in snapshot.url:
      logger.info('Not on a problem page (%s), watcher disabled', snapshot.url)
      return

    self._running = True
    logger.info('Submission watcher active on %s', snapshot.url)
    while self._running:
      await self.tick()
      await self._sleep(self.poll_interval)

  def stop(self) -> None:
    self._running = False

  async def tick(self) -> SubmissionEvent | None:
    if self.state is not DetectionState.IDLE:
      logger.debug('Detection pass in flight (%s), ignoring tick', self.state.value)
      return None

    self._transition(DetectionState.SAMPLING)
    try:
      return await self._detect()
    except ChannelClosedError as exc:
      logger.error('Could not reach background context: %s', exc)
      return None
    except Exception:  # noqa: BLE001
      logger.exception('Error checking for submission')
      return None
    finally:
      self._reset()

  async def _detect(self) -> SubmissionEvent | None:
    snapshot = await self.page.snapshot()
    if find_accepted_verdict(snapshot) is None:
      self._armed = True
      return None
    if not self._armed:
      return None

    self._transition(DetectionState.CANDIDATE)
    verdict = classify_page(snapshot)
    if verdict is not PageVerdict.ACCEPTED:
      logger.debug('Found "Accepted" text but page looks like %s, skipping', verdict.value)
      return None

    submission_id = f'{snapshot.url}-{int(self._clock() * 1000)}'
    if submission_id == self.last_submission_id:
      return None

    logger.info('Accepted submission detected: %s', submission_id)
    self.last_submission_id = submission_id
    self._armed = False
    self._transition(DetectionState.DEBOUNCED)
    await self._sleep(self.settle_delay)

    self._transition(DetectionState.EXTRACTING)
    event = await self._extract()
    if event is None:
      return None

    response = await self.channel.send({'action': 'CHECK_AUTO_PUSH'})
    if response.get('enabled') is False:
      logger.info('Auto-push disabled, skipping %s', event.title)
      return None

    await self._emit(event)
    return event

  async def _extract(self, snapshot: PageSnapshot | None = None) -> SubmissionEvent | None:
    if snapshot is None:
      snapshot = await self.page.snapshot()
    fields = extract_fields(snapshot, self.strategies)
    accepted_at = format_timestamp(datetime.fromtimestamp(self._clock(), tz=timezone.utc))
    return build_event(fields, accepted_at)

  async def _emit(self, event: SubmissionEvent) -> dict[str, Any]:
    self._transition(DetectionState.EMITTED)
    message = SubmissionMessage(action='ACCEPTED_SUBMISSION', data=event.to_wire())
    response = await self.channel.send(message.to_wire())
    self.last_response = response
    if response.get('success'):
      logger.info('Background accepted %s: %s', event.title, response.get('message') or response.get('url'))
    else:
      logger.error('Background failed to push %s: %s', event.title, response.get('error'))
    return response

  async def manual_push(self) -> dict[str, Any]:
    if self.state is not DetectionState.IDLE:
      return {'success': False, 'error': 'A submission is already being processed'}

    self._transition(DetectionState.SAMPLING)
    try:
      snapshot = await self.page.snapshot()
      if PROBLEM_PAGE_MARKER not in snapshot.url:
        return {'success': False, 'error': 'Not on a LeetCode problem page'}

      self._transition(DetectionState.EXTRACTING)
      event = await self._extract(snapshot)
      if event is None:
        return {'success': False, 'error': 'Could not extract title, language and code from the page'}
      return await self._emit(event)
    except (ChannelClosedError, IllegalTransitionError) as exc:
      logger.error('Manual push failed: %s', exc)
      return {'success': False, 'error': str(exc)}
    finally:
      self._reset()

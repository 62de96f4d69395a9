from __future__ import annotations

import os
import logging
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from pydantic import ValidationError

from .schemas import (
  ConnectionTestPayload,
  PushResult,
  RepositoryDescriptor,
  Settings,
  SettingsUpdate,
  SubmissionEvent,
  SubmissionMessage,
)
from .services.github import GitHubAPIError, describe_error
from .services.ledger import ActivityLedger
from .services.notifications import NotificationDispatcher
from .services.orchestrator import ClientFactory, PushOrchestrator, Sleep, default_client_factory
from .services.settings import load_settings, masked_settings, save_settings
from .services.storage import DEFAULT_DATA_DIR, KeyValueStore

logger = logging.getLogger(__name__)


def get_allowed_origins() -> list[str]:
  origins_env = os.getenv('FRONTEND_ORIGINS')
  if origins_env:
    return [origin.strip() for origin in origins_env.split(',') if origin.strip()]
  return ['http://localhost:5173']


def configure_logging(level: str | None = None) -> None:
  logging.basicConfig(
    level=(level or os.getenv('LOG_LEVEL', 'INFO')).upper(),
    format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
  )


def create_app(
  store: KeyValueStore | None = None,
  *,
  client_factory: ClientFactory = default_client_factory,
  sleep: Sleep | None = None,
) -> FastAPI:
  store = store or KeyValueStore(DEFAULT_DATA_DIR)
  ledger = ActivityLedger(store)
  notifications = NotificationDispatcher()
  orchestrator_kwargs: dict[str, Any] = {'client_factory': client_factory}
  if sleep is not None:
    orchestrator_kwargs['sleep'] = sleep
  orchestrator = PushOrchestrator(store, ledger, notifications, **orchestrator_kwargs)

  app = FastAPI(title='LeetHub Sync API', version='0.1.0')
  app.state.store = store
  app.state.ledger = ledger
  app.state.notifications = notifications
  app.state.orchestrator = orchestrator

  app.add_middleware(
    CORSMiddleware,
    allow_origins=get_allowed_origins(),
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
  )

  async def read_activity_log() -> dict[str, Any]:
    try:
      entries = await ledger.read()
      return {'success': True, 'log': [entry.to_wire() for entry in entries]}
    except Exception as exc:  # noqa: BLE001
      logger.exception('Unexpected error while reading the activity log')
      return {'success': False, 'error': str(exc)}

  async def read_statistics() -> dict[str, Any]:
    try:
      statistics = await ledger.read_statistics()
      return {'success': True, 'statistics': statistics.to_wire()}
    except Exception as exc:  # noqa: BLE001
      logger.exception('Unexpected error while reading statistics')
      return {'success': False, 'error': str(exc)}

  @app.get('/health', tags=['Health'])
  async def health_check() -> dict[str, str]:
    return {'status': 'ok'}

  @app.post('/api/messages', tags=['Messages'])
  async def handle_message(message: SubmissionMessage) -> dict[str, Any]:
    logger.info('Received message: %s', message.action)

    if message.action == 'ACCEPTED_SUBMISSION':
      try:
        event = SubmissionEvent.model_validate(message.data or {})
      except ValidationError as exc:
        logger.warning('Rejecting malformed submission payload: %s', exc)
        return PushResult(status='error', error=f'Invalid submission payload: {exc}').to_response()
      result = await orchestrator.submit(event)
      return result.to_response()

    if message.action == 'GET_ACTIVITY_LOG':
      return await read_activity_log()

    if message.action == 'GET_STATISTICS':
      return await read_statistics()

    if message.action == 'CHECK_AUTO_PUSH':
      try:
        settings = await load_settings(store)
      except Exception:  # noqa: BLE001
        logger.exception('Could not read auto-push setting, assuming enabled')
        return {'enabled': True}
      return {'enabled': settings.auto_push_enabled}

    raise HTTPException(status_code=400, detail=f'Unknown action "{message.action}".')

  @app.get('/api/activity', tags=['Activity'])
  async def get_activity() -> dict[str, Any]:
    return await read_activity_log()

  @app.get('/api/statistics', tags=['Activity'])
  async def get_statistics() -> dict[str, Any]:
    return await read_statistics()

  @app.get('/api/settings', tags=['Settings'])
  async def get_settings() -> dict[str, Any]:
    return masked_settings(await load_settings(store))

  @app.put('/api/settings', tags=['Settings'])
  async def update_settings(payload: SettingsUpdate) -> dict[str, Any]:
    return masked_settings(await save_settings(store, payload))

  @app.post('/api/github/test', response_model=RepositoryDescriptor, tags=['Settings'])
  async def test_github_access(payload: ConnectionTestPayload) -> RepositoryDescriptor:
    settings = Settings(
      github_token=payload.github_token,
      github_owner=payload.github_owner,
      github_repo=payload.github_repo,
    )
    try:
      async with client_factory(settings) as client:
        return await client.test_access()
    except GitHubAPIError as exc:
      raise HTTPException(status_code=502, detail=f'Cannot access repository: {describe_error(exc)}') from exc

  @app.get('/api/notifications/{notification_id}', tags=['Notifications'])
  async def open_notification(notification_id: str) -> RedirectResponse:
    url = notifications.open(notification_id)
    if not url:
      raise HTTPException(status_code=404, detail='Unknown notification.')
    return RedirectResponse(url)

  return app


app = create_app()


if __name__ == '__main__':
  import uvicorn

  configure_logging()
  uvicorn.run(app, host=os.getenv('LEETHUB_HOST', '127.0.0.1'), port=int(os.getenv('LEETHUB_PORT', '8000')))

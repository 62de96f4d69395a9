from __future__ import annotations

from typing import Any

from ..schemas import Settings, SettingsUpdate
from .storage import KeyValueStore

SETTINGS_KEYS: tuple[str, ...] = tuple(field.alias or name for name, field in Settings.model_fields.items())

REQUIRED_PUSH_FIELDS: tuple[tuple[str, str], ...] = (
  ('github_token', 'GitHub token'),
  ('github_owner', 'GitHub owner'),
  ('github_repo', 'GitHub repository'),
)


class ConfigurationError(RuntimeError):
  """Raised when required settings are missing; never retried."""


async def load_settings(store: KeyValueStore) -> Settings:
  stored = await store.get(SETTINGS_KEYS)
  # Empty strings come from cleared form fields and mean "use the default".
  values: dict[str, Any] = {key: value for key, value in stored.items() if value not in (None, '')}
  return Settings.model_validate(values)


async def save_settings(store: KeyValueStore, update: SettingsUpdate) -> Settings:
  changes = update.model_dump(by_alias=True, exclude_none=True)
  for key in ('githubToken', 'githubOwner', 'githubRepo', 'githubBranch', 'githubRootFolder'):
    if isinstance(changes.get(key), str):
      changes[key] = changes[key].strip()
  if changes:
    await store.set(changes)
  return await load_settings(store)


def require_push_settings(settings: Settings) -> None:
  missing = [label for field, label in REQUIRED_PUSH_FIELDS if not getattr(settings, field)]
  if missing:
    raise ConfigurationError(
      f"LeetHub not configured: {', '.join(missing)} missing. Please set up GitHub settings in Options."
    )


def masked_settings(settings: Settings) -> dict[str, Any]:
  payload = settings.model_dump(by_alias=True)
  token = payload.get('githubToken')
  if token:
    payload['githubToken'] = f'{token[:4]}...' if len(token) > 8 else '***'
  return payload

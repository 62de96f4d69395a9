import asyncio

import pytest

from leethub.schemas import SettingsUpdate
from leethub.services.settings import ConfigurationError, load_settings, require_push_settings, save_settings
from leethub.services.storage import KeyValueStore


def test_store_round_trips_through_disk(tmp_path):
  store = KeyValueStore(tmp_path)
  asyncio.run(store.set({'githubOwner': 'octo', 'activityLog': [{'status': 'success'}]}))

  reopened = KeyValueStore(tmp_path)
  assert asyncio.run(reopened.get(['githubOwner', 'missing'])) == {'githubOwner': 'octo'}
  assert asyncio.run(reopened.get())['activityLog'] == [{'status': 'success'}]


def test_store_ignores_corrupt_state(tmp_path):
  (tmp_path / 'state.json').write_text('{not json', encoding='utf-8')
  store = KeyValueStore(tmp_path)
  assert asyncio.run(store.get()) == {}


def test_store_update_returns_copy_isolated_from_caller():
  store = KeyValueStore()
  updated = asyncio.run(store.update('counter', lambda value: value + 1, default=0))
  assert updated == 1
  assert asyncio.run(store.update('counter', lambda value: value + 1, default=0)) == 2


def test_settings_defaults_apply_when_absent():
  settings = asyncio.run(load_settings(KeyValueStore()))
  assert settings.github_branch == 'main'
  assert settings.github_root_folder == 'leethub'
  assert settings.auto_push_enabled is True
  assert settings.notifications_enabled is True
  assert settings.debug_mode is False
  assert settings.commit_message_template == ''


def test_require_push_settings_names_missing_fields():
  store = KeyValueStore()
  settings = asyncio.run(save_settings(store, SettingsUpdate(github_owner='octo')))

  with pytest.raises(ConfigurationError) as excinfo:
    require_push_settings(settings)

  assert 'GitHub token' in str(excinfo.value)
  assert 'GitHub repository' in str(excinfo.value)
  assert 'GitHub owner' not in str(excinfo.value)

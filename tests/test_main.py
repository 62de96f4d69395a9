import pytest
from fastapi.testclient import TestClient

from leethub.main import create_app
from leethub.services.storage import KeyValueStore

SUBMISSION = {
  'problemTitle': 'Two Sum',
  'difficulty': 'Easy',
  'language': 'Python3',
  'code': 'class Solution:\n    pass\n',
  'problemUrl': 'https://leetcode.com/problems/two-sum/',
  'runtime': '52ms',
  'acceptedAt': '2026-01-02T03:04:05.000Z',
}


@pytest.fixture
def client(configured_store, fake_github, recording_sleep):
  app = create_app(configured_store, client_factory=fake_github.client_factory, sleep=recording_sleep)
  with TestClient(app) as test_client:
    yield test_client


def test_health(client):
  assert client.get('/health').json() == {'status': 'ok'}


def test_accepted_submission_round_trip(client, fake_github):
  response = client.post('/api/messages', json={'action': 'ACCEPTED_SUBMISSION', 'data': SUBMISSION})
  assert response.status_code == 200
  body = response.json()
  assert body['success'] is True
  assert body['url'].endswith('leethub/Easy/Two Sum.py')

  again = client.post('/api/messages', json={'action': 'ACCEPTED_SUBMISSION', 'data': SUBMISSION}).json()
  assert again == {'success': True, 'skipped': True, 'message': 'Content unchanged'}
  assert len(fake_github.puts) == 1

  log = client.post('/api/messages', json={'action': 'GET_ACTIVITY_LOG'}).json()
  assert log['success'] is True
  assert [entry['status'] for entry in log['log']] == ['skipped', 'success']
  assert log['log'][1]['problemTitle'] == 'Two Sum'

  statistics = client.post('/api/messages', json={'action': 'GET_STATISTICS'}).json()
  assert statistics['statistics']['totalSolved'] == 1
  assert statistics['statistics']['byDifficulty']['Easy'] == 1
  assert statistics['statistics']['byLanguage'] == {'Python3': 1}


def test_failed_push_reports_error(client, fake_github):
  fake_github.put_statuses = [403]
  body = client.post('/api/messages', json={'action': 'ACCEPTED_SUBMISSION', 'data': SUBMISSION}).json()

  assert body['success'] is False
  assert 'permission' in body['error']
  assert client.get('/api/activity').json()['log'][0]['status'] == 'error'


def test_malformed_submission_gets_error_response(client, fake_github):
  response = client.post(
    '/api/messages',
    json={'action': 'ACCEPTED_SUBMISSION', 'data': {**SUBMISSION, 'problemTitle': ['Two Sum']}},
  )

  assert response.status_code == 200
  body = response.json()
  assert body['success'] is False
  assert body['error'].startswith('Invalid submission payload')
  assert fake_github.requests == []


def test_check_auto_push_defaults_to_enabled(client):
  assert client.post('/api/messages', json={'action': 'CHECK_AUTO_PUSH'}).json() == {'enabled': True}
  client.put('/api/settings', json={'autoPushEnabled': False})
  assert client.post('/api/messages', json={'action': 'CHECK_AUTO_PUSH'}).json() == {'enabled': False}


def test_unknown_action_is_rejected(client):
  response = client.post('/api/messages', json={'action': 'SELF_DESTRUCT'})
  assert response.status_code == 400


def test_settings_are_masked_and_defaulted(client):
  settings = client.get('/api/settings').json()
  assert settings['githubToken'] == 'ghp_...'
  assert settings['githubBranch'] == 'main'
  assert settings['githubRootFolder'] == 'leethub'
  assert settings['notificationsEnabled'] is True

  updated = client.put('/api/settings', json={'githubBranch': ' dev ', 'githubRootFolder': ''}).json()
  assert updated['githubBranch'] == 'dev'
  assert updated['githubRootFolder'] == 'leethub'


def test_connection_test(client):
  response = client.post(
    '/api/github/test',
    json={'githubToken': 'ghp_x', 'githubOwner': 'octo', 'githubRepo': 'solutions'},
  )
  assert response.status_code == 200
  assert response.json()['full_name'] == 'octo/solutions'

  missing = client.post(
    '/api/github/test',
    json={'githubToken': 'ghp_x', 'githubOwner': 'octo', 'githubRepo': 'nope'},
  )
  assert missing.status_code == 502
  assert 'Cannot access repository' in missing.json()['detail']


def test_notification_click_redirects(client):
  client.post('/api/messages', json={'action': 'ACCEPTED_SUBMISSION', 'data': SUBMISSION})
  notifications = client.app.state.notifications
  notification = notifications.outbox[-1]

  response = client.get(f'/api/notifications/{notification.id}', follow_redirects=False)
  assert response.status_code == 307
  assert response.headers['location'] == notification.url
  assert client.get(f'/api/notifications/{notification.id}', follow_redirects=False).status_code == 404


def test_persisted_store_survives_new_app(tmp_path, fake_github, recording_sleep):
  store = KeyValueStore(tmp_path)
  app = create_app(store, client_factory=fake_github.client_factory, sleep=recording_sleep)
  with TestClient(app) as test_client:
    test_client.put(
      '/api/settings',
      json={'githubToken': 'ghp_persisted', 'githubOwner': 'octo', 'githubRepo': 'solutions'},
    )
    test_client.post('/api/messages', json={'action': 'ACCEPTED_SUBMISSION', 'data': SUBMISSION})

  reopened = create_app(KeyValueStore(tmp_path), client_factory=fake_github.client_factory)
  with TestClient(reopened) as test_client:
    log = test_client.get('/api/activity').json()['log']
    assert [entry['status'] for entry in log] == ['success']
    assert test_client.get('/api/statistics').json()['statistics']['totalSolved'] == 1

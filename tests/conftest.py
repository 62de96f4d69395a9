from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from leethub.schemas import Settings
from leethub.services.github import GitHubClient
from leethub.services.storage import KeyValueStore

GITHUB_TEST_URL = 'https://api.github.test'
CONTENTS_PREFIX = '/repos/octo/solutions/contents/'


class FakeGitHub:
  """In-memory Contents API that records every request it serves."""

  def __init__(self) -> None:
    self.files: dict[str, dict[str, str]] = {}
    self.requests: list[httpx.Request] = []
    self.put_statuses: list[int] = []
    self.get_statuses: list[int] = []
    self.get_status: int | None = None
    self._next_sha = 0

  @property
  def puts(self) -> list[httpx.Request]:
    return [request for request in self.requests if request.method == 'PUT']

  def seed(self, path: str, content: str, sha: str) -> None:
    self.files[path] = {'sha': sha, 'content': content}

  def transport(self) -> httpx.MockTransport:
    return httpx.MockTransport(self.handle)

  def client_factory(self, settings: Settings) -> GitHubClient:
    return GitHubClient(
      token=settings.github_token or '',
      owner=settings.github_owner or '',
      repo=settings.github_repo or '',
      branch=settings.github_branch,
      base_url=GITHUB_TEST_URL,
      transport=self.transport(),
    )

  def handle(self, request: httpx.Request) -> httpx.Response:
    self.requests.append(request)
    path = request.url.path
    if path == '/repos/octo/solutions':
      return httpx.Response(
        200,
        json={
          'full_name': 'octo/solutions',
          'html_url': 'https://github.test/octo/solutions',
          'default_branch': 'main',
          'private': True,
          'permissions': {'push': True},
        },
      )
    if not path.startswith(CONTENTS_PREFIX):
      return httpx.Response(404, json={'message': 'Not Found'})

    file_path = path[len(CONTENTS_PREFIX):]
    if request.method == 'GET':
      status = self.get_statuses.pop(0) if self.get_statuses else self.get_status
      if status is not None and status >= 400:
        return httpx.Response(status, json={'message': f'status {status}'})
      stored = self.files.get(file_path)
      if stored is None:
        return httpx.Response(404, json={'message': 'Not Found'})
      return httpx.Response(200, json={'sha': stored['sha'], 'content': stored['content'], 'path': file_path})

    if request.method == 'PUT':
      if self.put_statuses:
        status = self.put_statuses.pop(0)
        if status >= 400:
          return httpx.Response(status, json={'message': f'status {status}'})
      body: dict[str, Any] = json.loads(request.content)
      self._next_sha += 1
      sha = f'sha{self._next_sha}'
      self.files[file_path] = {'sha': sha, 'content': body['content']}
      return httpx.Response(
        201,
        json={'content': {'sha': sha, 'html_url': f'https://github.test/octo/solutions/blob/main/{file_path}'}},
      )

    return httpx.Response(405, json={'message': 'Method Not Allowed'})


@pytest.fixture
def fake_github() -> FakeGitHub:
  return FakeGitHub()


@pytest.fixture
def configured_store() -> KeyValueStore:
  store = KeyValueStore()
  store._data.update(
    {
      'githubToken': 'ghp_testtoken123',
      'githubOwner': 'octo',
      'githubRepo': 'solutions',
    }
  )
  return store


class RecordingSleep:
  def __init__(self) -> None:
    self.calls: list[float] = []

  async def __call__(self, seconds: float) -> None:
    self.calls.append(seconds)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
  return RecordingSleep()

from __future__ import annotations

import logging
import os
from enum import Enum
from typing import Any
from urllib.parse import quote

import httpx

from ..schemas import RemoteFile, RepositoryDescriptor

GITHUB_API_URL = os.getenv('GITHUB_API_URL', 'https://api.github.com')
GITHUB_ACCEPT = 'application/vnd.github.v3+json'

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
  AUTH = 'auth'
  NOT_FOUND = 'not_found'
  CONFLICT = 'conflict'
  VALIDATION = 'validation'
  TRANSIENT = 'transient'
  OTHER = 'other'


NON_RETRYABLE_KINDS = frozenset({ErrorKind.AUTH, ErrorKind.NOT_FOUND, ErrorKind.CONFLICT, ErrorKind.VALIDATION})


class GitHubAPIError(RuntimeError):
  """Raised when the GitHub API rejects a request or cannot be reached."""

  def __init__(self, kind: ErrorKind, detail: str, status_code: int | None = None) -> None:
    super().__init__(f'GitHub API error ({status_code or kind.value}): {detail}')
    self.kind = kind
    self.detail = detail
    self.status_code = status_code

  @property
  def retryable(self) -> bool:
    return self.kind not in NON_RETRYABLE_KINDS


def classify_status(status_code: int) -> ErrorKind:
  if status_code in (401, 403):
    return ErrorKind.AUTH
  if status_code == 404:
    return ErrorKind.NOT_FOUND
  if status_code == 409:
    return ErrorKind.CONFLICT
  if status_code == 422:
    return ErrorKind.VALIDATION
  if status_code == 429 or status_code >= 500:
    return ErrorKind.TRANSIENT
  return ErrorKind.OTHER


def describe_error(exc: GitHubAPIError) -> str:
  if exc.kind is ErrorKind.AUTH:
    if exc.status_code == 403:
      return (
        'GitHub denied permission to write to the repository (HTTP 403). '
        'Make sure your token has the repo permission for this repository.'
      )
    return 'GitHub rejected the token (HTTP 401). Check that your personal access token is valid and has repo permission.'
  if exc.kind is ErrorKind.NOT_FOUND:
    return 'Repository or branch not found (HTTP 404). Check the owner, repository and branch in your settings.'
  if exc.kind is ErrorKind.CONFLICT:
    return 'File changed on GitHub while pushing (409 conflict). Another push updated it concurrently; submit again to retry.'
  if exc.kind is ErrorKind.VALIDATION:
    return 'Invalid request (HTTP 422). GitHub rejected the file path or content as malformed.'
  if exc.kind is ErrorKind.TRANSIENT:
    return f'GitHub is temporarily unavailable after several attempts: {exc.detail}'
  return exc.detail or str(exc)


def _error_detail(response: httpx.Response) -> str:
  try:
    payload = response.json()
    if isinstance(payload, dict) and payload.get('message'):
      return str(payload['message'])
  except ValueError:
    pass
  return response.text[:200] or f'HTTP {response.status_code}'


class GitHubClient:
  def __init__(
    self,
    token: str,
    owner: str,
    repo: str,
    branch: str = 'main',
    *,
    base_url: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    timeout: float = 15.0,
  ) -> None:
    self.owner = owner
    self.repo = repo
    self.branch = branch
    self._client = httpx.AsyncClient(
      base_url=base_url or GITHUB_API_URL,
      headers={
        'Authorization': f'token {token}',
        'Accept': GITHUB_ACCEPT,
        'Content-Type': 'application/json',
      },
      timeout=timeout,
      transport=transport,
    )

  async def __aenter__(self) -> GitHubClient:
    return self

  async def __aexit__(self, *exc_info: Any) -> None:
    await self.close()

  async def close(self) -> None:
    await self._client.aclose()

  def _contents_url(self, path: str) -> str:
    return f'/repos/{self.owner}/{self.repo}/contents/{quote(path)}'

  async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
    try:
      response = await self._client.request(method, url, **kwargs)
    except httpx.TransportError as exc:
      raise GitHubAPIError(ErrorKind.TRANSIENT, f'Network error talking to GitHub: {exc}') from exc

    try:
      response.raise_for_status()
    except httpx.HTTPStatusError as exc:
      status_code = response.status_code
      raise GitHubAPIError(classify_status(status_code), _error_detail(response), status_code) from exc
    return response

  async def get_file(self, path: str) -> RemoteFile | None:
    try:
      response = await self._request('GET', self._contents_url(path), params={'ref': self.branch})
    except GitHubAPIError as exc:
      if exc.kind is ErrorKind.NOT_FOUND:
        return None
      raise

    payload = response.json()
    if not isinstance(payload, dict) or not payload.get('sha'):
      raise GitHubAPIError(ErrorKind.OTHER, f'Path "{path}" is not a file.', response.status_code)

    return RemoteFile(
      sha=payload['sha'],
      content=payload.get('content') or '',
      html_url=payload.get('html_url'),
    )

  async def get_version(self, path: str) -> str | None:
    remote = await self.get_file(path)
    return remote.sha if remote else None

  async def put_file(self, path: str, content_b64: str, message: str, sha: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {
      'message': message,
      'content': content_b64,
      'branch': self.branch,
    }
    if sha:
      body['sha'] = sha

    response = await self._request('PUT', self._contents_url(path), json=body)
    try:
      return response.json()
    except ValueError as exc:
      raise GitHubAPIError(ErrorKind.OTHER, 'GitHub returned a non-JSON response to the write.', response.status_code) from exc

  async def test_access(self) -> RepositoryDescriptor:
    response = await self._request('GET', f'/repos/{self.owner}/{self.repo}')
    payload = response.json()
    return RepositoryDescriptor(
      full_name=payload.get('full_name') or f'{self.owner}/{self.repo}',
      html_url=payload.get('html_url'),
      default_branch=payload.get('default_branch'),
      private=bool(payload.get('private')),
      permissions=payload.get('permissions') or {},
    )

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

Difficulty = Literal['Easy', 'Medium', 'Hard', 'Unknown']
DIFFICULTIES: tuple[str, ...] = ('Easy', 'Medium', 'Hard', 'Unknown')


def _coerce_difficulty(value: Any) -> str:
  if isinstance(value, str):
    for bucket in DIFFICULTIES:
      if value.strip().lower() == bucket.lower():
        return bucket
  return 'Unknown'


class WireModel(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  def to_wire(self) -> dict[str, Any]:
    return self.model_dump(by_alias=True, exclude_none=True)


class SubmissionEvent(WireModel):
  title: str = Field('', alias='problemTitle')
  difficulty: Difficulty = 'Unknown'
  language: str = ''
  code: str = ''
  problem_url: Optional[str] = Field(None, alias='problemUrl')
  runtime: Optional[str] = None
  memory: Optional[str] = None
  accepted_at: str = Field('', alias='acceptedAt')

  @field_validator('difficulty', mode='before')
  @classmethod
  def _normalize_difficulty(cls, value: Any) -> str:
    return _coerce_difficulty(value)

  def missing_fields(self) -> list[str]:
    return [name for name in ('title', 'language', 'code') if not getattr(self, name).strip()]


class SubmissionMessage(WireModel):
  action: str
  data: Optional[dict[str, Any]] = None


class PushResult(BaseModel):
  status: Literal['success', 'skipped', 'error']
  url: Optional[str] = None
  error: Optional[str] = None
  message: Optional[str] = None

  def to_response(self) -> dict[str, Any]:
    response: dict[str, Any] = {'success': self.status != 'error'}
    if self.status == 'skipped':
      response['skipped'] = True
    for key in ('message', 'error', 'url'):
      value = getattr(self, key)
      if value is not None:
        response[key] = value
    return response


class LedgerEntry(WireModel):
  timestamp: Optional[str] = None
  status: Literal['success', 'error', 'skipped', 'pending']
  message: str
  problem_title: Optional[str] = Field(None, alias='problemTitle')
  difficulty: Optional[str] = None
  language: Optional[str] = None
  url: Optional[str] = None
  error: Optional[str] = None


def _empty_buckets() -> dict[str, int]:
  return {bucket: 0 for bucket in DIFFICULTIES}


class Statistics(WireModel):
  total_solved: int = Field(0, alias='totalSolved')
  by_difficulty: dict[str, int] = Field(default_factory=_empty_buckets, alias='byDifficulty')
  by_language: dict[str, int] = Field(default_factory=dict, alias='byLanguage')
  first_push: Optional[str] = Field(None, alias='firstPush')
  last_push: Optional[str] = Field(None, alias='lastPush')

  @field_validator('by_difficulty', mode='before')
  @classmethod
  def _fill_buckets(cls, value: Any) -> dict[str, int]:
    buckets = _empty_buckets()
    for key, count in (value or {}).items():
      bucket = _coerce_difficulty(key)
      buckets[bucket] += int(count or 0)
    return buckets


class Settings(WireModel):
  github_token: Optional[str] = Field(None, alias='githubToken')
  github_owner: Optional[str] = Field(None, alias='githubOwner')
  github_repo: Optional[str] = Field(None, alias='githubRepo')
  github_branch: str = Field('main', alias='githubBranch')
  github_root_folder: str = Field('leethub', alias='githubRootFolder')
  auto_push_enabled: bool = Field(True, alias='autoPushEnabled')
  notifications_enabled: bool = Field(True, alias='notificationsEnabled')
  commit_message_template: str = Field('', alias='commitMessageTemplate')
  debug_mode: bool = Field(False, alias='debugMode')


class SettingsUpdate(WireModel):
  github_token: Optional[str] = Field(None, alias='githubToken')
  github_owner: Optional[str] = Field(None, alias='githubOwner')
  github_repo: Optional[str] = Field(None, alias='githubRepo')
  github_branch: Optional[str] = Field(None, alias='githubBranch')
  github_root_folder: Optional[str] = Field(None, alias='githubRootFolder')
  auto_push_enabled: Optional[bool] = Field(None, alias='autoPushEnabled')
  notifications_enabled: Optional[bool] = Field(None, alias='notificationsEnabled')
  commit_message_template: Optional[str] = Field(None, alias='commitMessageTemplate')
  debug_mode: Optional[bool] = Field(None, alias='debugMode')


class ConnectionTestPayload(WireModel):
  github_token: str = Field(alias='githubToken')
  github_owner: str = Field(alias='githubOwner')
  github_repo: str = Field(alias='githubRepo')


class RepositoryDescriptor(BaseModel):
  full_name: str
  html_url: Optional[str] = None
  default_branch: Optional[str] = None
  private: bool = False
  permissions: dict[str, bool] = Field(default_factory=dict)


class RemoteFile(BaseModel):
  sha: str
  content: str = ''
  html_url: Optional[str] = None


class VerdictNode(BaseModel):
  text: str
  container_text: str = ''


class PageSnapshot(BaseModel):
  url: str
  body_text: str = ''
  verdict_nodes: list[VerdictNode] = Field(default_factory=list)
  title_text: Optional[str] = None
  difficulty_text: Optional[str] = None
  language_text: Optional[str] = None
  code_candidates: list[str] = Field(default_factory=list)


class Notification(BaseModel):
  id: str
  title: str
  message: str
  url: Optional[str] = None

from __future__ import annotations

import base64
import re
from datetime import datetime, timezone
from typing import Any

FORBIDDEN_FILENAME_PATTERN = re.compile(r'[\\/:*?"<>|]')
WHITESPACE_PATTERN = re.compile(r'\s+')

DEFAULT_EXTENSION = '.txt'

EXTENSION_MAPPINGS: dict[str, str] = {
  'python': '.py',
  'python3': '.py',
  'java': '.java',
  'javascript': '.js',
  'typescript': '.ts',
  'c++': '.cpp',
  'cpp': '.cpp',
  'c': '.c',
  'go': '.go',
  'golang': '.go',
  'rust': '.rs',
  'kotlin': '.kt',
  'swift': '.swift',
  'ruby': '.rb',
  'php': '.php',
  'csharp': '.cs',
  'c#': '.cs',
  'scala': '.scala',
  'dart': '.dart',
  'elixir': '.ex',
  'erlang': '.erl',
  'racket': '.rkt',
  'mysql': '.sql',
  'mssql': '.sql',
  'oraclesql': '.sql',
  'postgresql': '.sql',
  'pandas': '.py',
  'bash': '.sh',
  'shell': '.sh',
}


def sanitize_title(title: str | None) -> str:
  if not title:
    return 'Untitled'
  sanitized = FORBIDDEN_FILENAME_PATTERN.sub('', title).strip()
  sanitized = WHITESPACE_PATTERN.sub(' ', sanitized)
  return sanitized or 'Untitled'


def ext_from_language(language: str | None) -> str:
  if not language:
    return DEFAULT_EXTENSION
  return EXTENSION_MAPPINGS.get(language.strip().lower(), DEFAULT_EXTENSION)


def build_file_path(title: str | None, difficulty: str | None, language: str | None, root_folder: str) -> str:
  root = root_folder.strip('/')
  bucket = difficulty or 'Unknown'
  filename = f'{sanitize_title(title)}{ext_from_language(language)}'
  if not root:
    return f'{bucket}/{filename}'
  return f'{root}/{bucket}/{filename}'


def safe_b64_encode(text: str) -> str:
  return base64.b64encode(text.encode('utf-8')).decode('ascii')


def safe_b64_decode(encoded: str) -> str:
  # GitHub wraps base64 content at 60 columns.
  return base64.b64decode(WHITESPACE_PATTERN.sub('', encoded)).decode('utf-8')


def contents_are_equal(existing: str | None, new: str | None) -> bool:
  if existing is None or new is None:
    return False
  return WHITESPACE_PATTERN.sub('', existing) == WHITESPACE_PATTERN.sub('', new)


def format_timestamp(moment: datetime | None = None) -> str:
  moment = moment or datetime.now(timezone.utc)
  if moment.tzinfo is None:
    moment = moment.replace(tzinfo=timezone.utc)
  moment = moment.astimezone(timezone.utc)
  return moment.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def build_commit_message(
  title: str,
  language: str,
  problem_url: str | None = None,
  runtime: str | None = None,
  memory: str | None = None,
  accepted_at: str | None = None,
) -> str:
  message = f'feat: {title} ({language}) - Accepted'

  details: list[str] = []
  if problem_url:
    details.append(f'Problem: {problem_url}')
  if runtime:
    details.append(f'Runtime: {runtime}')
  if memory:
    details.append(f'Memory: {memory}')
  if accepted_at:
    details.append(f'Accepted at: {accepted_at}')

  if details:
    message += '\n\n' + '\n'.join(details)
  return message


def render_commit_template(template: str, values: dict[str, Any]) -> str:
  return template.format(**{key: '' if value is None else value for key, value in values.items()}).strip()

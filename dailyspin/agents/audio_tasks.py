"""
Audio Task Manager - Suno job submission and status reconciliation

Suno (through sunoapi.com) is inconsistent about response shapes and about
which identifier it hands back, so every payload goes through a shape
normalizer before anything else looks at it:

- Submission payloads -> SubmissionResult (task IDs and clip IDs)
- Status payloads -> GenerationJob records with one of four states
"""

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence
from urllib.parse import quote, urlsplit, urlunsplit

from dateutil import parser as dateparser

from ..config import Settings
from ..errors import (
    AuthenticationError,
    ConfigurationError,
    NetworkError,
    PollTimeout,
    UpstreamError,
)
from ..extractors.html_fetcher import HTMLFetcher
from ..models import GenerationJob, SubmissionResult

logger = logging.getLogger(__name__)

AUTH_STATUSES = {401, 403}
# The job most likely has not materialized upstream yet
PENDING_STATUSES = {400, 404, 422}

UPSTREAM_STATES = {
    'succeeded': 'succeeded',
    'success': 'succeeded',
    'complete': 'succeeded',
    'completed': 'succeeded',
    'done': 'succeeded',
    'failed': 'failed',
    'failure': 'failed',
    'error': 'failed',
    'cancelled': 'failed',
    'canceled': 'failed',
    'auth_error': 'auth_error',
}


# ---------------------------------------------------------------------------
# Shape normalizers
# ---------------------------------------------------------------------------

def _job_descriptors(payload: Any) -> List[Dict[str, Any]]:
    """
    Flatten a submission payload into job descriptor objects.

    Recognized shapes: a top-level list, {"data": [...]}, {"data": {...}},
    or a single object.
    """
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict):
        data = payload.get('data')
        if isinstance(data, list):
            items = data
        elif isinstance(data, dict):
            items = [data]
        else:
            items = [payload]
    else:
        items = []
    return [item for item in items if isinstance(item, dict)]


def _unique(values: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered


def normalize_submission(payload: Any) -> SubmissionResult:
    """
    Map a Suno create response onto deduplicated task and clip IDs.

    `id` counts as a task ID only when neither `clip_id` nor `song_id` is
    present. When no ID is found at all, the payload is kept in `raw`.
    """
    task_ids: List[str] = []
    clip_ids: List[str] = []
    for item in _job_descriptors(payload):
        if item.get('task_id'):
            task_ids.append(str(item['task_id']))
        if item.get('id') and not item.get('clip_id') and not item.get('song_id'):
            task_ids.append(str(item['id']))
        if item.get('clip_id'):
            clip_ids.append(str(item['clip_id']))
        if item.get('song_id'):
            clip_ids.append(str(item['song_id']))

    result = SubmissionResult(task_ids=_unique(task_ids), clip_ids=_unique(clip_ids))
    if not result.has_ids:
        result.raw = payload
    return result


def normalize_status_rows(payload: Any) -> List[Dict[str, Any]]:
    """
    Flatten a status payload into per-job rows.

    Recognized shapes: {"data": [...]}, a top-level list,
    {"clips": [...], "tasks": [...]}, or a single object.
    """
    if not payload:
        return []
    if isinstance(payload, dict) and isinstance(payload.get('data'), list):
        rows = payload['data']
    elif isinstance(payload, list):
        rows = payload
    elif isinstance(payload, dict):
        rows = []
        for key in ('clips', 'tasks'):
            if isinstance(payload.get(key), list):
                rows.extend(payload[key])
        if not rows:
            rows = [payload]
    else:
        rows = []
    return [row for row in rows if isinstance(row, dict)]


def normalize_state(value: Any) -> str:
    """Map an upstream state string onto pending/succeeded/failed/auth_error."""
    if not isinstance(value, str):
        return 'pending'
    return UPSTREAM_STATES.get(value.strip().lower(), 'pending')


def normalize_timestamp(value: Any) -> str:
    if value in (None, ''):
        return ''
    if isinstance(value, (int, float)):
        return str(value)
    try:
        return dateparser.parse(str(value)).isoformat()
    except (ValueError, OverflowError):
        return str(value)


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_text(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, list):
        return ', '.join(str(v) for v in value)
    return str(value)


def normalize_audio_url(
    value: Any,
    migrate_host: bool = False,
    migrations: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Normalize a Suno audio URL.

    Relative paths pass through unchanged; absolute URLs are re-serialized,
    optionally with deprecated hosts rewritten; anything unparsable is
    echoed back trimmed.
    """
    if not isinstance(value, str):
        return ''
    trimmed = value.strip()
    if not trimmed:
        return ''
    if trimmed.startswith('/'):
        return trimmed

    try:
        parts = urlsplit(trimmed)
        hostname = parts.hostname
    except ValueError:
        return trimmed
    if not parts.scheme or not hostname:
        return trimmed

    netloc = parts.netloc
    if migrate_host and migrations:
        migrated = migrations.get(hostname.lower())
        if migrated:
            netloc = netloc.replace(hostname, migrated, 1) if hostname in netloc else migrated
    return urlunsplit((parts.scheme.lower(), netloc, parts.path or '/', parts.query, parts.fragment))


def parse_ids(value: Any) -> List[str]:
    """Comma-separated IDs (string or list of strings) -> trimmed, non-empty."""
    if not value:
        return []
    if isinstance(value, str):
        entries = value.split(',')
    elif isinstance(value, (list, tuple)):
        entries = [part for entry in value if isinstance(entry, str) for part in entry.split(',')]
    else:
        return []
    return [entry.strip() for entry in entries if entry.strip()]


def job_from_row(row: Dict[str, Any], task_id: str = '') -> GenerationJob:
    return GenerationJob(
        task_id=str(row.get('task_id') or task_id or ''),
        clip_id=str(row.get('clip_id') or row.get('song_id') or ''),
        state=normalize_state(row.get('state') or row.get('status')),
        audio_url=normalize_audio_url(row.get('audio_url')),
        title=_as_text(row.get('title')),
        tags=_as_text(row.get('tags')),
        lyrics=_as_text(row.get('lyrics') or row.get('prompt')),
        image_url=_as_text(row.get('image_url')),
        video_url=_as_text(row.get('video_url')),
        created_at=normalize_timestamp(row.get('created_at')),
        duration=_as_float(row.get('duration')),
        model_version=_as_text(row.get('mv')),
    )


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------

class AudioTaskManager:
    """
    Submits Suno jobs and reconciles their status.
    """

    def __init__(self, settings: Settings, fetcher: HTMLFetcher):
        self.settings = settings
        self.fetcher = fetcher
        self.base_url = settings.suno_api_base.rstrip('/')

    def auth_headers(self) -> Dict[str, str]:
        if not self.settings.suno_api_key:
            raise ConfigurationError('Suno API key is not configured.')
        return {'Authorization': f"Bearer {self.settings.suno_api_key}"}

    async def submit(self, prompt: str, tags: Optional[str] = None) -> SubmissionResult:
        """
        Submit a generation job.

        Args:
            prompt: Lyrics (already length-capped)
            tags: Optional style tags

        Returns:
            SubmissionResult; `raw` is set when upstream returned no IDs

        Raises:
            ConfigurationError: If the Suno key is missing
            UpstreamError: If Suno answered with a non-2xx status
        """
        headers = self.auth_headers()
        body = {
            'custom_mode': True,
            'prompt': prompt,
            'make_instrumental': False,
            'mv': self.settings.suno_model_version,
        }
        if tags:
            body['tags'] = tags

        response = await self.fetcher.request(
            'POST',
            f"{self.base_url}/suno/create",
            headers=dict(headers, **{'Content-Type': 'application/json'}),
            json_body=body,
        )
        payload = response.json()
        if not response.ok:
            logger.warning(f"[audio_tasks] Suno create failed with status {response.status}")
            raise UpstreamError('Suno create failed', status=response.status, details=payload)

        result = normalize_submission(payload)
        if result.has_ids:
            logger.info(f"[audio_tasks] Submitted: task_ids={result.task_ids} clip_ids={result.clip_ids}")
        else:
            logger.warning(f"[audio_tasks] Suno create returned no identifiers: {str(payload)[:200]}")
        return result

    async def _status_for_task(self, task_id: str, headers: Dict[str, str]) -> List[GenerationJob]:
        response = await self.fetcher.fetch(
            f"{self.base_url}/suno/task/{quote(task_id, safe='')}",
            headers=headers,
        )
        if response.status in AUTH_STATUSES:
            raise AuthenticationError(
                'Suno rejected the API key.',
                job_id=task_id,
                status=response.status,
                details=response.json(),
            )
        if response.status in PENDING_STATUSES:
            logger.debug(f"[audio_tasks] Task {task_id} not available yet ({response.status})")
            return [GenerationJob(task_id=task_id, state='pending')]
        if not response.ok:
            raise UpstreamError(
                f"Suno task lookup for {task_id} failed",
                status=response.status,
                details=response.json(),
            )
        rows = normalize_status_rows(response.json())
        return [job_from_row(row, task_id=task_id) for row in rows]

    async def _status_by_tasks(self, task_ids: Sequence[str], headers: Dict[str, str]) -> List[GenerationJob]:
        results = await asyncio.gather(
            *(self._status_for_task(task_id, headers) for task_id in task_ids),
            return_exceptions=True,
        )

        # An authentication failure outranks every other result
        for result in results:
            if isinstance(result, AuthenticationError):
                raise result

        jobs: List[GenerationJob] = []
        for task_id, result in zip(task_ids, results):
            if isinstance(result, UpstreamError):
                logger.warning(f"[audio_tasks] Dropping task {task_id}: {result.message} (status {result.status})")
                continue
            if isinstance(result, BaseException):
                raise result
            jobs.extend(result)
        return jobs

    async def _status_by_clips(self, clip_ids: Sequence[str], headers: Dict[str, str]) -> List[GenerationJob]:
        response = await self.fetcher.fetch(f"{self.base_url}/suno/task/", headers=headers)
        if response.status in AUTH_STATUSES:
            raise AuthenticationError(
                'Suno rejected the API key.',
                status=response.status,
                details=response.json(),
            )
        if not response.ok:
            raise UpstreamError('Suno task fetch failed', status=response.status, details=response.json())

        wanted = set(clip_ids)
        jobs = [job_from_row(row) for row in normalize_status_rows(response.json())]
        return [job for job in jobs if job.clip_id in wanted]

    async def status(
        self,
        task_ids: Sequence[str] = (),
        clip_ids: Sequence[str] = (),
    ) -> List[GenerationJob]:
        """
        Current state of the given jobs.

        Task IDs are polled individually and concurrently; clip IDs alone
        are resolved by listing recent jobs and filtering locally.

        Raises:
            ConfigurationError: If the Suno key is missing
            AuthenticationError: If any lookup answered 401/403
            UpstreamError: If the clip listing failed
        """
        headers = self.auth_headers()
        if task_ids:
            return await self._status_by_tasks(list(task_ids), headers)
        if clip_ids:
            return await self._status_by_clips(list(clip_ids), headers)
        return []

    async def wait_for_audio(
        self,
        task_ids: Sequence[str] = (),
        clip_ids: Sequence[str] = (),
        interval_sec: Optional[float] = None,
        timeout_sec: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> GenerationJob:
        """
        Poll until a job has succeeded with an audio URL.

        The returned job carries a host-migrated audio URL, ready for
        playback.

        Raises:
            PollTimeout: If nothing is ready within the timeout
            AuthenticationError: If Suno rejects the key
        """
        interval = self.settings.poll_interval_sec if interval_sec is None else interval_sec
        timeout = self.settings.poll_timeout_sec if timeout_sec is None else timeout_sec
        start = clock()

        while clock() - start < timeout:
            try:
                jobs = await self.status(task_ids=task_ids, clip_ids=clip_ids)
            except NetworkError as e:
                logger.warning(f"[audio_tasks] Poll failed, retrying: {e.message}")
                jobs = []

            for job in jobs:
                if job.state == 'succeeded' and job.audio_url:
                    return replace(job, audio_url=normalize_audio_url(
                        job.audio_url,
                        migrate_host=True,
                        migrations=self.settings.audio_host_migrations,
                    ))
            await sleep(interval)

        raise PollTimeout('Timed out waiting for Suno audio', details={'timeout_sec': timeout})

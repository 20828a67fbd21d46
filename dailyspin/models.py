from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

JOB_STATES = ('pending', 'succeeded', 'failed', 'auth_error')


@dataclass
class Story:
    headline: str
    summary: str = ''
    source: str = ''
    link: str = ''

    @property
    def key(self) -> Tuple[str, ...]:
        """Uniqueness key: link if present, else (source, headline)."""
        if self.link:
            return (self.link,)
        return (self.source or 'source', self.headline)

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Story':
        return cls(
            headline=str(data.get('headline') or '').strip(),
            summary=str(data.get('summary') or ''),
            source=str(data.get('source') or ''),
            link=str(data.get('link') or ''),
        )


@dataclass
class GenerationJob:
    """
    One Suno generation job as reported by the latest poll.

    Never mutated locally: every poll rebuilds it from upstream data.
    """
    task_id: str = ''
    clip_id: str = ''
    state: str = 'pending'
    audio_url: str = ''
    title: str = ''
    tags: str = ''
    lyrics: str = ''
    image_url: str = ''
    video_url: str = ''
    created_at: str = ''
    duration: Optional[float] = None
    model_version: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SubmissionResult:
    task_ids: List[str] = field(default_factory=list)
    clip_ids: List[str] = field(default_factory=list)
    # Upstream payload, kept only when no identifiers could be found
    raw: Any = None

    @property
    def has_ids(self) -> bool:
        return bool(self.task_ids or self.clip_ids)


@dataclass
class PodcastSelection:
    headline: str
    source: str = ''
    link: str = ''
    reason: str = ''
    host_script: str = ''
    deep_dive_script: str = ''
    article_content: str = ''
    song_prompt: str = ''
    song_task_ids: List[str] = field(default_factory=list)
    song_clip_ids: List[str] = field(default_factory=list)
    tags: str = ''

    def to_dict(self, full: bool = True) -> Dict[str, Any]:
        data = asdict(self)
        if full:
            return data
        return {key: data[key] for key in ('headline', 'source', 'link', 'reason', 'host_script')}


@dataclass
class PodcastPlan:
    overview_script: str
    selections: List[PodcastSelection] = field(default_factory=list)
    phase: str = 'plan'

    def to_dict(self) -> Dict[str, Any]:
        full = self.phase == 'full'
        return {
            'phase': self.phase,
            'overview_script': self.overview_script,
            'selections': [selection.to_dict(full=full) for selection in self.selections],
        }

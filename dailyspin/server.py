"""
Daily Spin HTTP API (FastAPI)

Endpoints:
- GET  /                     health check
- GET  /api/news-headlines   current deduplicated headlines
- POST /api/article-content  readable text of one article
- POST /api/generate-song    lyrics from an article or the headlines, submitted to Suno
- GET  /api/song-status      normalized Suno job status
- GET  /api/proxy-audio      allowlisted audio relay
- POST /api/podcast          three-story podcast plan (plan or full phase)

Run with: uvicorn dailyspin.server:app
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from .agents.audio_relay import AudioRelay
from .agents.audio_tasks import AudioTaskManager, parse_ids
from .agents.collector import FeedCollector, dedupe_stories
from .agents.lyricist import LyricSynthesizer, enforce_limit
from .agents.model_chain import ModelChain, build_model_chain
from .config import Settings, configure_logging, load_settings
from .errors import (
    AuthenticationError,
    DailySpinError,
    InvalidRequestError,
    ModelChainExhausted,
    UpstreamError,
)
from .extractors.html_fetcher import HTMLFetcher
from .extractors.text_extractor import TextExtractor
from .models import Story
from .podcast_agent.planner import PodcastPlanner

logger = logging.getLogger(__name__)

MAX_HEADLINE_LIMIT = 200


class ArticleRequest(BaseModel):
    url: Optional[str] = None


class SongRequest(BaseModel):
    url: Optional[str] = None
    headline: Optional[str] = None
    source: Optional[str] = None
    tags: Optional[str] = None


class StoryPayload(BaseModel):
    headline: str = ''
    summary: Optional[str] = ''
    source: Optional[str] = ''
    link: Optional[str] = ''


class PodcastRequest(BaseModel):
    stories: Optional[List[StoryPayload]] = None
    phase: str = 'plan'


class Services:
    """
    Components shared by every request, built once per app.

    The model chain is built on first use so a missing OpenRouter key only
    fails the endpoints that need it.
    """

    def __init__(
        self,
        settings: Settings,
        fetcher: Optional[HTMLFetcher] = None,
        chain: Optional[ModelChain] = None,
    ):
        self.settings = settings
        self.fetcher = fetcher or HTMLFetcher(settings.user_agent, timeout_sec=settings.request_timeout_sec)
        self.collector = FeedCollector(self.fetcher, settings.feed_sources)
        self.extractor = TextExtractor(self.fetcher, settings.article_user_agent)
        self.tasks = AudioTaskManager(settings, self.fetcher)
        self.relay = AudioRelay(self.fetcher, settings.allowed_audio_hosts)
        self._chain = chain

    @property
    def chain(self) -> ModelChain:
        if self._chain is None:
            self._chain = build_model_chain(self.settings)
        return self._chain

    def lyricist(self) -> LyricSynthesizer:
        return LyricSynthesizer(self.chain, max_chars=self.settings.suno_prompt_max_chars)

    def planner(self) -> PodcastPlanner:
        return PodcastPlanner(
            chain=self.chain,
            extractor=self.extractor,
            lyricist=self.lyricist(),
            tasks=self.tasks,
            song_tags=self.settings.podcast_song_tags,
        )

    async def headlines(self, limit: int) -> List[Story]:
        stories = await self.collector.collect(limit)
        return dedupe_stories(stories, limit)

    async def close(self) -> None:
        await self.fetcher.close()


def _clamp_limit(limit: Optional[int], default: int) -> int:
    if limit is None:
        return default
    return max(1, min(MAX_HEADLINE_LIMIT, limit))


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        settings: Configuration; loaded from the environment when omitted
        services: Prebuilt components (tests pass fakes here)
    """
    if services is not None:
        settings = services.settings
    if settings is None:
        settings = load_settings()
    configure_logging(settings.log_level)
    services = services or Services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await services.close()

    app = FastAPI(title=settings.app_title, lifespan=lifespan)
    app.state.services = services

    @app.exception_handler(DailySpinError)
    async def handle_pipeline_error(request: Request, exc: DailySpinError):
        logger.warning(f"[server] {request.url.path} failed ({exc.status_code}): {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        logger.warning(f"[server] {request.url.path} rejected: {len(exc.errors())} invalid field(s)")
        return JSONResponse(
            status_code=400,
            content={'error': 'Invalid request.', 'details': jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception(f"[server] Unhandled error on {request.url.path}")
        return JSONResponse(status_code=500, content={'error': 'Internal server error', 'details': str(exc)})

    @app.get("/")
    def health():
        return {"ok": True}

    @app.get("/api/news-headlines")
    async def news_headlines(limit: Optional[int] = None):
        count = _clamp_limit(limit, settings.headline_limit)
        try:
            stories = await services.headlines(count)
        except DailySpinError:
            raise
        except Exception as e:
            logger.exception("[server] Headline collection failed")
            raise DailySpinError('Unable to load news headlines.', details=str(e), status_code=502)
        return {"stories": [story.to_dict() for story in stories]}

    @app.post("/api/article-content")
    async def article_content(body: ArticleRequest):
        if not body.url:
            raise InvalidRequestError('A valid article URL must be provided.')
        content = await services.extractor.extract(body.url)
        return {"content": content}

    @app.post("/api/generate-song")
    async def generate_song(body: Optional[SongRequest] = None):
        body = body or SongRequest()
        lyricist = services.lyricist()
        services.tasks.auth_headers()

        if body.url:
            try:
                article = await services.extractor.extract(body.url)
            except DailySpinError as e:
                raise DailySpinError(
                    'Unable to retrieve the full article for the selected headline.',
                    details=e.message,
                    status_code=502,
                )
            try:
                lyrics = await lyricist.summarize_article(body.headline or '', body.source or '', article)
            except ModelChainExhausted as e:
                raise DailySpinError(
                    'Unable to summarise the article with OpenRouter.',
                    details=e.details,
                    status_code=502,
                )
        else:
            stories = await services.headlines(settings.song_headline_count)
            if not stories:
                raise DailySpinError('No news headlines are available right now.', status_code=503)
            lyrics = await lyricist.lyrics_from_headlines(stories)

        prompt = enforce_limit(lyrics, settings.suno_prompt_max_chars)
        logger.info(f"[server] Suno prompt (lyrics) length: {len(prompt)}")

        try:
            submission = await services.tasks.submit(prompt, tags=body.tags)
        except UpstreamError as e:
            status = e.status if e.status >= 400 else 502
            return JSONResponse(
                status_code=status,
                content={'error': e.message, 'details': e.details, 'promptLen': len(prompt)},
            )

        content = {
            'task_ids': submission.task_ids,
            'clip_ids': submission.clip_ids,
            'prompt': prompt,
            'summary': prompt,
        }
        if not submission.has_ids:
            content['raw'] = submission.raw
        return JSONResponse(status_code=202, content=content)

    @app.get("/api/song-status")
    async def song_status(
        task_ids: Optional[str] = None,
        ids: Optional[str] = None,
        clip_ids: Optional[str] = None,
    ):
        tasks = parse_ids(task_ids) or parse_ids(ids)
        clips = parse_ids(clip_ids)
        if not tasks and not clips:
            raise InvalidRequestError('Provide task_ids or clip_ids.')

        try:
            jobs = await services.tasks.status(task_ids=tasks, clip_ids=clips)
        except AuthenticationError as e:
            logger.warning(f"[server] Suno rejected the API key (status {e.status})")
            return JSONResponse(status_code=502, content={
                'error': e.message,
                'details': e.details,
                'data': [{'task_id': e.job_id, 'state': 'auth_error'}],
            })
        return {"code": 200, "data": [job.to_dict() for job in jobs], "message": "success"}

    @app.get("/api/proxy-audio")
    async def proxy_audio(src: Optional[str] = None):
        stream = await services.relay.open(src)
        return StreamingResponse(stream.body, media_type=stream.content_type, headers=stream.headers)

    @app.post("/api/podcast")
    async def podcast(body: Optional[PodcastRequest] = None):
        body = body or PodcastRequest()
        planner = services.planner()
        if body.phase == 'full':
            services.tasks.auth_headers()

        if body.stories:
            stories = [Story.from_dict(story.model_dump()) for story in body.stories]
        else:
            stories = await services.headlines(settings.headline_limit)
        if not stories:
            raise DailySpinError('No news headlines are available right now.', status_code=503)

        plan = await planner.plan(stories, phase=body.phase)
        return plan.to_dict()

    return app


app = create_app()

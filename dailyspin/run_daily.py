"""
One-shot daily run: headlines -> lyrics -> Suno song -> audio URL.

Usage:
    python -m dailyspin.run_daily [--limit N] [--no-wait]
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .agents.audio_tasks import AudioTaskManager
from .agents.collector import FeedCollector, dedupe_stories
from .agents.lyricist import LyricSynthesizer
from .agents.model_chain import build_model_chain
from .config import Settings, configure_logging, load_settings
from .errors import DailySpinError
from .extractors.html_fetcher import HTMLFetcher

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Turn today's headlines into a song.")
    parser.add_argument('--limit', type=int, default=None,
                        help='Number of headlines to sing about (default: SONG_HEADLINE_COUNT)')
    parser.add_argument('--no-wait', action='store_true',
                        help='Submit the song and exit without polling for audio')
    return parser.parse_args(argv)


async def run(settings: Settings, limit: int, wait: bool = True) -> int:
    fetcher = HTMLFetcher(settings.user_agent, timeout_sec=settings.request_timeout_sec)
    try:
        # Step 1: Collection
        collector = FeedCollector(fetcher, settings.feed_sources)
        stories = dedupe_stories(await collector.collect(limit), limit)
        if not stories:
            logger.error("[run_daily] No news headlines are available right now.")
            return 1

        print(f"\nToday's headlines ({len(stories)}):")
        for index, story in enumerate(stories, start=1):
            print(f"\n{index}. {story.headline}")
            if story.summary:
                print(f"   Summary: {story.summary}")

        # Step 2: Lyrics
        lyricist = LyricSynthesizer(build_model_chain(settings), max_chars=settings.suno_prompt_max_chars)
        lyrics = await lyricist.lyrics_from_headlines(stories)
        print(f"\nLyrics ({len(lyrics)} chars):\n\n{lyrics}\n")

        # Step 3: Submission
        tasks = AudioTaskManager(settings, fetcher)
        submission = await tasks.submit(lyrics)
        if not submission.has_ids:
            logger.error(f"[run_daily] Suno returned no job identifiers: {submission.raw}")
            return 1
        print(f"Submitted: task_ids={submission.task_ids} clip_ids={submission.clip_ids}")

        if not wait:
            return 0

        # Step 4: Polling
        job = await tasks.wait_for_audio(task_ids=submission.task_ids, clip_ids=submission.clip_ids)
        print(f"\nAudio ready: {job.title or 'Untitled'}\n{job.audio_url}")
        return 0
    finally:
        await fetcher.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = load_settings()
    configure_logging(settings.log_level)
    limit = args.limit if args.limit and args.limit > 0 else settings.song_headline_count

    try:
        code = asyncio.run(run(settings, limit, wait=not args.no_wait))
    except DailySpinError as e:
        logger.error(f"[run_daily] {e.message} {e.details or ''}".rstrip())
        return 1

    print(f"[run_daily] ===== PIPELINE COMPLETE =====")
    return code


if __name__ == "__main__":
    sys.exit(main())

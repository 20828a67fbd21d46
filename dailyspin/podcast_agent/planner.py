"""
Podcast Planner - LangGraph workflow for a three-story news episode

Nodes:
- plan: model picks 3 stories and writes the overview and host scripts;
  the reply is parsed, validated and matched back to real stories
- fetch_articles: full article text per selected story
- deep_dive: a longer narration script per story
- submit_songs: summarized lyrics per story, submitted to Suno

The plan phase stops after `plan`; the full phase runs every node.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, TypedDict

from langgraph.graph import END, StateGraph

from ..agents.audio_tasks import AudioTaskManager
from ..agents.lyricist import LyricSynthesizer, enforce_limit, format_stories_for_model
from ..agents.model_chain import ModelChain
from ..errors import (
    DailySpinError,
    InvalidRequestError,
    ModelChainExhausted,
    PlanValidationError,
    UpstreamError,
)
from ..extractors.text_extractor import TextExtractor
from ..models import PodcastPlan, PodcastSelection, Story
from .headline_matcher import MATCH_THRESHOLD, match_headline
from .json_reply import parse_json_reply

logger = logging.getLogger(__name__)

STORIES_PER_EPISODE = 3
PHASES = ('plan', 'full')
MAX_DEEP_DIVE_ARTICLE_CHARS = 12000

PLAN_SYSTEM_PROMPT = (
    "You are the producer and host of a short daily news podcast. "
    "From a numbered list of candidate stories, choose exactly 3 that together make a balanced, "
    "informative episode. Prefer stories with broad impact and avoid picking two stories about the same event. "
    "Respond with pure JSON only, no markdown and no commentary, using this shape: "
    '{"overview_script": "<a 60-100 word spoken introduction to the episode>", '
    '"selections": [{"headline": "<the headline exactly as listed>", "source": "<the source as listed>", '
    '"reason": "<one sentence on why it matters>", "host_script": "<a 40-80 word spoken segment introducing the story>"}]}. '
    "The selections array must contain exactly 3 objects."
)

DEEP_DIVE_SYSTEM_PROMPT = (
    "You are the host of a daily news podcast writing the deep-dive segment for one story. "
    "Write 130 to 230 words of natural spoken narration that explains what happened, who is involved, "
    "the background, and why it matters. Use only facts from the material provided. "
    "Respond with the narration text only, no headings, no stage directions, no markdown."
)


class PodcastState(TypedDict, total=False):
    """State for the podcast planning workflow."""
    phase: str
    candidates: List[Story]
    overview_script: str
    selections: List[PodcastSelection]


def _route_after_plan(state: PodcastState) -> str:
    return 'full' if state.get('phase') == 'full' else 'plan'


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ''


def validate_plan_reply(data: Dict[str, Any], candidates: List[Story]) -> PodcastPlan:
    """
    Turn a parsed model reply into a plan with exactly 3 matched selections.

    Each model headline is matched back to a candidate story; unmatched
    selections and repeats of an already-matched story are dropped.

    Raises:
        PlanValidationError: Missing overview, or fewer than 3 selections
            survive matching
    """
    overview = _text(data.get('overview_script'))
    if not overview:
        raise PlanValidationError('The model did not return an episode overview.')

    raw_selections = data.get('selections')
    if not isinstance(raw_selections, list):
        raise PlanValidationError('The model did not return a list of selections.')

    selections: List[PodcastSelection] = []
    used = set()
    for raw in raw_selections:
        if not isinstance(raw, dict):
            continue
        headline = _text(raw.get('headline'))
        story = match_headline(headline, candidates, threshold=MATCH_THRESHOLD)
        if story is None:
            logger.warning(f"[planner] No candidate matches selected headline: {headline[:80]}")
            continue
        if story.key in used:
            logger.warning(f"[planner] Story selected twice, dropping repeat: {story.headline[:80]}")
            continue
        used.add(story.key)
        selections.append(PodcastSelection(
            headline=story.headline,
            source=story.source or _text(raw.get('source')),
            link=story.link,
            reason=_text(raw.get('reason')),
            host_script=_text(raw.get('host_script')),
        ))

    selections = selections[:STORIES_PER_EPISODE]
    if len(selections) != STORIES_PER_EPISODE:
        raise PlanValidationError(
            f"The model selected {len(selections)} usable stories; {STORIES_PER_EPISODE} are required.",
        )
    return PodcastPlan(overview_script=overview, selections=selections)


class PodcastPlanner:
    """
    Builds and runs the podcast workflow graph.
    """

    def __init__(
        self,
        chain: ModelChain,
        extractor: TextExtractor,
        lyricist: LyricSynthesizer,
        tasks: AudioTaskManager,
        song_tags: Optional[str] = None,
    ):
        self.chain = chain
        self.extractor = extractor
        self.lyricist = lyricist
        self.tasks = tasks
        self.song_tags = song_tags
        self.app = self._build_graph()

    def _build_graph(self):
        graph = StateGraph(PodcastState)

        graph.add_node("plan", self.run_plan)
        graph.add_node("fetch_articles", self.run_fetch_articles)
        graph.add_node("deep_dive", self.run_deep_dive)
        graph.add_node("submit_songs", self.run_submit_songs)

        graph.set_entry_point("plan")
        graph.add_conditional_edges("plan", _route_after_plan, {"full": "fetch_articles", "plan": END})
        graph.add_edge("fetch_articles", "deep_dive")
        graph.add_edge("deep_dive", "submit_songs")
        graph.add_edge("submit_songs", END)

        return graph.compile()

    async def plan(self, stories: List[Story], phase: str = 'plan') -> PodcastPlan:
        """
        Run the workflow for `phase` ('plan' or 'full').

        Raises:
            InvalidRequestError: Unknown phase or too few candidate stories
            PlanValidationError: The model reply could not be validated
            ModelChainExhausted: No model answered the planning prompt
        """
        if phase not in PHASES:
            raise InvalidRequestError(f"Unknown podcast phase: {phase}", status_code=400)
        candidates = [story for story in stories if story.headline]
        if len(candidates) < STORIES_PER_EPISODE:
            raise InvalidRequestError(
                f"At least {STORIES_PER_EPISODE} stories are needed to plan an episode.",
                status_code=503,
            )

        logger.info(f"[planner] Planning {phase} episode from {len(candidates)} stories")
        result = await self.app.ainvoke({"phase": phase, "candidates": candidates})
        return PodcastPlan(
            overview_script=result["overview_script"],
            selections=list(result.get("selections", [])),
            phase=phase,
        )

    # -- nodes ---------------------------------------------------------------

    async def run_plan(self, state: PodcastState) -> Dict[str, Any]:
        candidates = state["candidates"]
        digest = format_stories_for_model(candidates)
        messages = [
            {"role": "system", "content": PLAN_SYSTEM_PROMPT},
            {"role": "user", "content": f"Candidate stories:\n\n{digest}"},
        ]

        result = await self.chain.try_in_order(messages)
        logger.info(f"[planner] Plan reply from {result.model}: {len(result.text)} chars")

        plan = validate_plan_reply(parse_json_reply(result.text), candidates)
        return {"overview_script": plan.overview_script, "selections": plan.selections}

    async def _fetch_article(self, link: str) -> Optional[str]:
        try:
            return await self.extractor.extract(link)
        except DailySpinError as e:
            logger.warning(f"[planner] Article unavailable at {link}: {e.message}")
            return None

    async def run_fetch_articles(self, state: PodcastState) -> Dict[str, Any]:
        selections = state["selections"]

        # One fetch per distinct link for this request
        links = list(dict.fromkeys(s.link for s in selections if s.link))
        fetched = await asyncio.gather(*(self._fetch_article(link) for link in links))
        cache: Dict[str, Optional[str]] = dict(zip(links, fetched))

        return {
            "selections": [
                replace(selection, article_content=cache.get(selection.link) or selection.host_script)
                for selection in selections
            ]
        }

    async def _deep_dive_for(self, selection: PodcastSelection) -> str:
        article = selection.article_content
        if len(article) > MAX_DEEP_DIVE_ARTICLE_CHARS:
            article = article[:MAX_DEEP_DIVE_ARTICLE_CHARS]
        messages = [
            {"role": "system", "content": DEEP_DIVE_SYSTEM_PROMPT},
            {"role": "user", "content": (
                f"Headline: {selection.headline}\n"
                f"Source: {selection.source or 'Unknown source'}\n"
                f"Host introduction: {selection.host_script}\n\n"
                f"Article:\n{article}"
            )},
        ]
        try:
            result = await self.chain.try_in_order(messages)
        except ModelChainExhausted as e:
            logger.warning(f"[planner] Deep dive failed for '{selection.headline[:60]}': {e.details}")
            return selection.host_script
        return result.text.strip()

    async def run_deep_dive(self, state: PodcastState) -> Dict[str, Any]:
        selections = []
        for selection in state["selections"]:
            script = await self._deep_dive_for(selection)
            selections.append(replace(selection, deep_dive_script=script))
        return {"selections": selections}

    async def _song_prompt_for(self, selection: PodcastSelection) -> str:
        try:
            return await self.lyricist.summarize_article(
                selection.headline,
                selection.source,
                selection.article_content,
            )
        except (ModelChainExhausted, InvalidRequestError) as e:
            logger.warning(f"[planner] Lyrics failed for '{selection.headline[:60]}', using narration: {e.message}")
            return enforce_limit(selection.deep_dive_script or selection.host_script, self.lyricist.max_chars)

    async def run_submit_songs(self, state: PodcastState) -> Dict[str, Any]:
        selections = []
        for selection in state["selections"]:
            prompt = await self._song_prompt_for(selection)
            tags = self.song_tags or ''
            try:
                submission = await self.tasks.submit(prompt, tags=tags or None)
            except UpstreamError as e:
                logger.warning(f"[planner] Dropping '{selection.headline[:60]}': song submission failed ({e.message})")
                continue
            if not submission.has_ids:
                logger.warning(f"[planner] Suno returned no IDs for '{selection.headline[:60]}'")
            selections.append(replace(
                selection,
                song_prompt=prompt,
                song_task_ids=submission.task_ids,
                song_clip_ids=submission.clip_ids,
                tags=tags,
            ))
        logger.info(f"[planner] Submitted songs for {len(selections)}/{len(state['selections'])} stories")
        return {"selections": selections}

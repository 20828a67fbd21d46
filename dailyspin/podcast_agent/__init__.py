"""
Podcast Agent - three-story news episode planning

This package contains the LangGraph workflow that turns a headline pool into
a short podcast episode with a companion song per story.

Modules:
- planner: the workflow graph (plan, fetch_articles, deep_dive, submit_songs)
- json_reply: pulls a JSON object out of a free-text model reply
- headline_matcher: maps model-written headlines back to real stories
"""

from .planner import PodcastPlanner

__all__ = ['PodcastPlanner']

"""
Pipeline agents: feed collection, model fallback, lyric writing, Suno tasks
and the audio relay.
"""

from .settings import FeedSource, Settings, configure_logging, load_settings

__all__ = ['FeedSource', 'Settings', 'configure_logging', 'load_settings']

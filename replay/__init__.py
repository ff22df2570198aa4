"""
Blog Replay

Archives a blog's posts from Blogger, WordPress or Substack and replays them,
one entry per run, into an Atom feed.
"""

__version__ = "0.3.0"
__description__ = "Replays blog archives into an Atom feed"
__license__ = "MIT"

# Package level constants
PROG_NAME = "blog-replay"
USER_AGENT = f"{PROG_NAME}/{__version__}"
DEFAULT_FEED_DIR = "feeds"
DEFAULT_DATA_DIR = "data"

# Version info tuple
VERSION_INFO = tuple(map(int, __version__.split('.')))

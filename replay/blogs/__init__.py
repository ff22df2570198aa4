"""
Blog source package for blog replay.

This package turns the archives of Blogger, WordPress and Substack blogs into
one lazy sequence of normalized entries. Each platform module exposes a
``get_blog`` factory; ``detect_blog`` tries them in turn.
"""
from replay.blogs.base import (
    BlogSource,
    BlogType,
    LoggingProgressObserver,
    NullProgressObserver,
    PageCursor,
    ProgressObserver,
    blog_type,
    detect_blog,
)
from replay.blogs.blogger import BloggerBlog
from replay.blogs.substack import SubstackBlog
from replay.blogs.wordpress import WordpressBlog

__all__ = [
    "BlogSource",
    "BlogType",
    "BloggerBlog",
    "LoggingProgressObserver",
    "NullProgressObserver",
    "PageCursor",
    "ProgressObserver",
    "SubstackBlog",
    "WordpressBlog",
    "blog_type",
    "detect_blog",
]

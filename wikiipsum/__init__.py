"""wikiipsum: filler text generated from random Wikipedia page summaries."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("wikiipsum")
except PackageNotFoundError:
    __version__ = "unknown"

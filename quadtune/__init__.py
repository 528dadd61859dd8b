"""quadtune: blackbox log analysis and issue consolidation for multirotor tuning."""

from importlib.metadata import PackageNotFoundError, version

__all__ = ["__version__"]

try:
    __version__: str = version("quadtune")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

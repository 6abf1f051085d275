"""evo-levels: on-chain activity points and wallet level service."""
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("evo-levels")
except PackageNotFoundError:
    __version__ = "0.0.0"

"""ddtool — decision pack interpreter for deficiency classification walks."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ddtool")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from ddtool.case_store import CaseStore
from ddtool.core import CaseSession
from ddtool.engine import DecisionEngine
from ddtool.loader import PackLoader
from ddtool.packs import Pack, PackNormalizer

__all__ = ["CaseSession", "CaseStore", "DecisionEngine", "Pack", "PackLoader", "PackNormalizer", "__version__"]

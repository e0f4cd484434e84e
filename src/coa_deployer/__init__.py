"""coa-deployer - cluster bootstrap and configuration sync for Cromwell on Azure."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("coa-deployer")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # Fallback for editable installs without metadata

from .main import main

__all__ = ["main", "__version__"]

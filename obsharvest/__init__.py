from obsharvest import monitor, harvest
from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("obsharvest")
except PackageNotFoundError:
    # package is not installed
    pass
__all__ = ['monitor', 'harvest']

from .config import Settings
from .web import create_app

__all__ = ["Settings", "create_app"]
__version__ = "0.1.0"

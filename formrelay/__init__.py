from .app import Pipeline, build_pipeline
from .config import Settings

__version__ = "0.1.0"

__all__ = ["Pipeline", "build_pipeline", "Settings"]

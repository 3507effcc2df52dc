"""Public character card library: PNG card codec, import pipeline and store."""

from .library import CardLibrary

__version__ = "0.1.0"

__all__ = ["CardLibrary", "__version__"]

"""Document loading and text splitting."""

from .document_loader import DocumentLoadError, load_script

__all__ = ["DocumentLoadError", "load_script"]

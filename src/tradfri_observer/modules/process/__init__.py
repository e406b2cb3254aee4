"""Document parsers."""

from .linkformat import LinkFormatError, parse_core_links

__all__ = ["LinkFormatError", "parse_core_links"]

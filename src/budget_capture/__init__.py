"""
Budget capture: handwritten budget/quote photos to structured, exportable documents.

Shared foundations (config, logging, paths) plus the extraction pipeline,
history store, renderers and the interactive layers built on top.
"""

__all__ = [
    "config",
    "logging",
    "paths",
]

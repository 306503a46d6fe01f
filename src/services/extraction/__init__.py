"""Streaming menu extraction engine.

Modules are imported directly (`services.extraction.session`, ...); the
intake and storage services import the shared exceptions from here too, so
this package keeps no eager imports.
"""

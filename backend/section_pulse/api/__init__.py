"""HTTP read surface and ingestion hook."""

from section_pulse.api.server import create_app

__all__ = ["create_app"]

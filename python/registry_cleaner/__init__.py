"""
Registry image cleaner.

Deletes old or unwanted images from Docker Hub and the GitHub Container
Registry, selected by tag prefix and maximum age:
- providers: per-registry credentials, listing and delete calls
- orchestrator: filter + best-effort multi-channel deletion
- events: structured event records and sinks
"""

__version__ = "1.0.0"

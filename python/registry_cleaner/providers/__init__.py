"""
Registry providers.

- Docker Hub (catalog API + registry content API)
- GitHub Container Registry (GitHub Packages versions API)
"""

from registry_cleaner.providers.base import Provider
from registry_cleaner.providers.dockerhub import DockerHubProvider
from registry_cleaner.providers.ghcr import GhcrProvider, parse_ghcr_repository

__all__ = [
    "Provider",
    "DockerHubProvider",
    "GhcrProvider",
    "parse_ghcr_repository",
]

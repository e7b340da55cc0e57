"""Pick the metadata repository implementation from settings."""

from __future__ import annotations

import logging

from factlens.parser.loader import CatalogLoader
from factlens.settings import Settings
from factlens.storage.memory_repo import InMemoryMetadataRepository
from factlens.storage.repository import MetadataRepository
from factlens.storage.sql_repo import SqlMetadataRepository

logger = logging.getLogger(__name__)


def build_repository(settings: Settings) -> MetadataRepository:
    """SQL store when ``metadata_db_url`` is set, else a YAML catalog, else empty."""
    if settings.metadata_db_url:
        logger.info("Using SQL metadata store")
        return SqlMetadataRepository.from_url(settings.metadata_db_url)
    if settings.catalog_path:
        logger.info("Loading catalog from %s", settings.catalog_path)
        return CatalogLoader().load_file(settings.catalog_path)
    logger.warning("No metadata store configured; starting with an empty catalog")
    return InMemoryMetadataRepository()

"""Application services: storage, sync, enrichment and reporting."""

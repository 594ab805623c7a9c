"""Services layer - parsing, enrichment and ingestion."""

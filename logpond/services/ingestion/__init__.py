"""Log ingestion service - enrichment and persistence."""
from .assembler import Enricher, assemble
from .service import IngestionService, check_input, run_from_settings

__all__ = ["Enricher", "assemble", "IngestionService", "check_input", "run_from_settings"]

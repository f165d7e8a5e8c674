"""Infrastructure layer: database, logging, clock and storage."""

"""Domain services: normalization, validation, reconciliation, queries and storage."""

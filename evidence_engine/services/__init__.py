"""Domain services: ingestion handoff, propagation, conflicts, health, notifications."""

"""Service layer: validation, authorization and orchestration per operation."""

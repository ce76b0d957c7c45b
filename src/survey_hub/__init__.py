"""Survey export normalization and filtering."""

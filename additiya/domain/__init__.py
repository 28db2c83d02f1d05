"""Domain models, error taxonomy and result container."""

"""Domain models and errors for the alerting engine."""

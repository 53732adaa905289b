"""Adapters binding the alerting engine's protocols to concrete infrastructure."""

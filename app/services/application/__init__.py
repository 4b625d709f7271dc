"""Application services: alerting, auto-control and the reading pipeline."""

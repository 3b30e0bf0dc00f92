"""Async SQLAlchemy persistence: engine, models and collaborator repositories."""

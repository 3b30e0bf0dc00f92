"""Pydantic domain models shared by the engine, services and API."""

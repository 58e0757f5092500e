"""Startup wiring and seeding."""

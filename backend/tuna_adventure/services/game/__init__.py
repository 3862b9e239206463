"""Game domain services: scoring, decisions, session lifecycle and read models."""

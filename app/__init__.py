"""Mediation scheduling service."""

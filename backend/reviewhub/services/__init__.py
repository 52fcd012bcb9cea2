"""Datastore-backed operations over the scoring engine."""

"""Nomos: spaced-repetition scheduling engine."""

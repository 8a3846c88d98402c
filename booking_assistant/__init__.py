"""Conversational room booking assistant."""

"""Conversational rental search backend."""

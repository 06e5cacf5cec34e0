"""Conversation orchestration services."""

"""Conversation threads, messages and outbound routing."""

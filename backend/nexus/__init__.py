"""Skill Nexus backend."""

"""Announcements, comments, materials, assignments and submissions."""

"""Resources, courses and projects with their access codes."""

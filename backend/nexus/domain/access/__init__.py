"""Owner and instructor authorization rules."""

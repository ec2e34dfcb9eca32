"""Session state and end-of-session summaries."""

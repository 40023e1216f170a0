"""Process runtime helpers: health probes and shutdown signals."""

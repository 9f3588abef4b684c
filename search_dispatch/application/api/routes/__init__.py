"""HTTP routes: search, status/metrics and health."""

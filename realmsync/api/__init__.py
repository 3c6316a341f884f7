"""HTTP blueprints: health checks and the admin API."""

"""HTTP surface for rentcache (cache operations, health and metrics)."""

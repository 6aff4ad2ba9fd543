"""Video module: status records and per-owner overlays."""

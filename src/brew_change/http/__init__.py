"""HTTP fetch layer: URL validation, retries, and the on-disk response cache."""

"""Storage, cache, token and scheduling adapters."""

"""Infrastructure adapters: database, cache, identity, realtime, payments."""

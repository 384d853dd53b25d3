"""Git package sources, content store, transports and fetcher."""

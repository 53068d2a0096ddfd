"""mirrorurl.crawler: frontier, fetcher, link extraction and the worker pool."""

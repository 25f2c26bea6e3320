"""Infrastructure: backend HTTP client, object storage, offline cache."""

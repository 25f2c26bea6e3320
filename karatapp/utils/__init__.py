"""Shared helpers: config, logging, retry, search normalization, media rules, error messages."""

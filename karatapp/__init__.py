"""Karatapp: kata/ohyo catalog, media storage and forum backed by a hosted Supabase project."""

__version__ = "0.1.0"

"""Streamlit presentation helpers."""

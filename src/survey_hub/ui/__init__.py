"""Streamlit presentation shell."""

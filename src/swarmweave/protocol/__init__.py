"""Data model and collaborator protocols."""

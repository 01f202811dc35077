"""Configuration and prompt templates."""

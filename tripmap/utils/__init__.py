"""Configuration loading and date helpers."""

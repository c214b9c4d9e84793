"""Shared utilities: logging setup and configuration validation."""

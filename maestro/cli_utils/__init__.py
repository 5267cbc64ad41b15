"""Helpers for the maestro command line interface."""

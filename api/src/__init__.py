"""Learnpath API."""

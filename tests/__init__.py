"""
Tests for the catalog mutation engine and the catalog API.

Run: pytest
"""

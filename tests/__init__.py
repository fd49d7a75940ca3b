"""
Tests Package - Unit Tests

Test structure:
- tests/unit/ - Fast, isolated unit tests (httpx.MockTransport, no network)
- tests/conftest.py - Shared fixtures (settings, mock journal client)
"""

"""
Shelfmark Test Suite

Tests are organized into:
- unit/: Unit tests for resolution, classification and MARC export
- integration/: API tests against the FastAPI app with fake sources
"""

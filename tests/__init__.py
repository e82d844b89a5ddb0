"""
Store Locator Gateway Test Suite

Structure:
- unit/: Unit tests for individual components (tokens, gate, caches, geocoding, tiles, ranking, widget)
- integration/: The assembled FastAPI app driven through TestClient
"""

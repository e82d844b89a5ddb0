"""
Gateway: Store Locator API

- Issues capability tokens (siteId, collectionId, provider key; HS256, exp)
- Gates /api/locations, /api/geocode and /api/maps/* on those tokens
- Serves collection items (cached per collection), batch/single geocoding
  and a map tile proxy that never exposes the provider key
- CORS headers on every response, including rejections

Entry point:
    python -m gateway.server --config config/params.yaml
"""

# Routes package init
"""
Screenshot Manager API - Routes Package
=======================================

Route Inventory:
    - auth.py:         POST   /api/auth/login
                       POST   /api/auth/logout
    - screenshots.py:  GET    /api/screenshots
                       GET    /api/screenshots/{key}
                       DELETE /api/screenshots/{key}
                       PATCH  /api/screenshots/{key}/metadata
                       DELETE /api/screenshots/{key}/metadata
    - health.py:       GET    /health

Routes stay thin: parse the request, call a service, wrap the result.
"""

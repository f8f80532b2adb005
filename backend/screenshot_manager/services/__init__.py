# Services package init
"""
Screenshot Manager API - Services Layer
=======================================

What:  Business logic between the routes (HTTP) and the object store.
How:   Services take plain values and raise typed exceptions; they know
       nothing about requests or responses.

Service Inventory:
    - TokenService:      HS256 session token issue and verify
    - AuthService:       single-user login and bearer header checks
    - metadata_service:  sanitize, validate, encode, decode, size check, merge
    - ScreenshotService: list, get, delete, metadata update and clear
"""

# Middleware package init
"""
Screenshot Manager API - Middleware Package
===========================================

Middleware chain (outermost first):
    Request → [CORS] → [Request ID] → [Logging] → [GZip] → [Rate Limit] → Route

    CORS sits outside everything so 429s and errors still carry CORS headers.
    The request ID is assigned before the access line and the rate limiter
    run, so both can report it.
"""

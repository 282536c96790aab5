# Middleware package init
"""
API Sync Backend - Middleware Package
======================================

Chain (outermost first):
    RateLimit → RequestID → AccessLogging → GZip → CORS → route

Starlette runs middleware in reverse order of `add_middleware`, so main.py
registers them innermost first.
"""

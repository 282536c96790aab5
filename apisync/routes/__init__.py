# Routes package init
"""
API Sync Backend - API Routes Package
======================================

Route Inventory:
    - projects.py:   POST /api/init, /api/projects[/{id}[/summary]]
    - endpoints.py:  /api/endpoints[/{id}], specs/{side}, reconcile, conflicts
    - health.py:     GET  /health

Routes are thin: extract request data, call a service, set status code and
headers. Business rules live in the services.
"""

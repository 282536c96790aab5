# Services package init
"""
API Sync Backend - Services Layer
==================================

Service Inventory:
    - ConflictDetector:     pure frontend-vs-backend spec comparison
    - EndpointAggregate:    owns specs, conflicts and status of one endpoint
    - ReconciliationStore:  in-memory working set with filters and counters
    - ProjectService:       projects and the default-project bootstrap
    - EndpointService:      loads, mutates (through the aggregate) and flushes

Services never commit; the request-scoped session in `apisync.database`
commits once the route returns.
"""

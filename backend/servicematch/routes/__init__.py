# Routes package init
"""
ServiceMatch Backend - API Routes Package
==========================================

Route Inventory:
    - services.py:          /api/services (search, similar, create, get, update)
    - service_requests.py:  /api/service-requests (CRUD, matching services)
    - health.py:            GET /health

Routes stay thin: parse the request, call a service from the container,
set headers. Business rules live in services/.
"""

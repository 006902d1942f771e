# Routes package init
"""
MedSnap Backend — API Routes Package
======================================

Route Inventory:
    - billing.py:    POST /api/create-checkout-session, /api/cancel-subscription,
                     /api/stripe-webhook
    - documents.py:  /api/documents (list, upload, edit, recategorize, delete)
    - profile.py:    GET /api/profile, POST /api/profile/reconcile
    - files.py:      GET /api/files/{path} (signed local blobs)
    - health.py:     GET /health

Routes stay thin: read the request, call a service, shape the response.
Business rules live in medsnap.services.
"""

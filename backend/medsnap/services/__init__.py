# Services package init
"""
MedSnap Backend — Services Layer
==================================

Business logic between the routes (HTTP) and the database/storage adapters.
Every service receives its collaborators explicitly (see
medsnap/dependencies.py); none keeps module-level state.

Service Inventory:
    - quota:                 Upload quota gate (pure functions)
    - document_service:      DocumentCatalog — CRUD, search, blob lifecycle
    - subscription_service:  SubscriptionReconciler — Stripe events → profiles
    - payment_service:       PaymentGateway — Stripe SDK adapter
    - data_store:            ProfileRepository, DocumentRepository (rows)
    - storage_base:          BlobStorage interface
    - local_storage:         LocalBlobStorage (disk + HMAC signed URLs)
    - supabase_storage:      SupabaseBlobStorage (hosted bucket over httpx)
"""

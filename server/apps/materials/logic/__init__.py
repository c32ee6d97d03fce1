"""Business logic layer for materials app.

This package contains all business logic for the materials tree:
- File upload, create, move, rename, delete, download, tier migration
- Folder listing, creation, rename and delete
- Command objects and the cached FileTreeService
- Reconciliation of metadata against blob storage

All business logic should be implemented here, separate from
models (data layer) and infrastructure (external systems).
"""

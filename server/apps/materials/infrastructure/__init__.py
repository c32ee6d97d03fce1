"""Infrastructure layer for materials app.

This package contains integrations with external systems:
- Tier storage backends (S3/MinIO/R2)
- Tier routing and object key layout
- Metadata extraction (extension, tag, checksum, identifiers)

Keep infrastructure concerns separate from business logic.
"""

"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- storage: Object storage (R2/S3)

These wrappers translate between external formats and our domain models.
"""

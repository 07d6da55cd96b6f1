"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- postgres: File metadata persistence
- storage: Object storage upload grants (S3)

These wrappers translate between external formats and our domain models.
"""

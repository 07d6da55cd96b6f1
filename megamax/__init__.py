"""
MEGA MAX - direct-to-storage upload coordination.

Clients upload file bytes straight to object storage; this package only
hands out upload grants and keeps the metadata records:
- core: Framework-agnostic upload lifecycle logic
- infrastructure: S3 and PostgreSQL integrations
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"

"""
Core business logic for upload coordination.

This module is framework-agnostic - it doesn't import FastAPI, boto3,
or psycopg2. Storage and persistence come in through protocols, so the
upload lifecycle can be tested with in-memory collaborators.
"""

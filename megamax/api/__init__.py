"""
HTTP layer: FastAPI routes and dependencies.

Routes translate JSON requests into calls on the upload coordinator and
file gateway; they contain no upload logic of their own.
"""

"""API route modules: uploads, files and health."""

"""Image storage for image messages.

Uploaded images are written to local disk with UUID-based names and their
metadata is tracked in DuckDB. The public URL of an image points at the
``GET /images/{image_id}`` endpoint of this service.
"""

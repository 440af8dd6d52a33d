"""
B2 image host - uploads images to Backblaze B2 and keeps the bucket in
sync with the host's gallery.

This package contains the complete application:
- core: Framework-agnostic upload/delete logic
- infrastructure: B2 API client
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"

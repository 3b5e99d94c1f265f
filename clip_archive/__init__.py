"""
Clip Archive - accepts short audio clips over HTTP and archives them
in a remote object store.

This package contains the complete application:
- core: Framework-agnostic submission and archive logic
- infrastructure: Remote store and transcoder adapters
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"

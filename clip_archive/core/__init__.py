"""
Core business logic for the clip archive.

This module is framework-agnostic - it doesn't import FastAPI, httpx,
boto3 or any other infrastructure concern. Storage and transcoding are
reached through protocols that the infrastructure layer implements.
"""

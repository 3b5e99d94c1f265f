"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- storage: Remote object storage (Dropbox, R2/S3)
- audio: FFmpeg transcoding

These wrappers translate between external formats and our domain models.
"""

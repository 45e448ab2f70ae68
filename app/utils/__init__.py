"""Utility helpers for the VOD edge service.

Submodules:
- aws: read-only boto3 wrappers (S3 object reads, shared client factory)
"""

__all__: list[str] = []

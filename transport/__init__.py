"""
transport — Upload operations the dispatcher can call.

Public API:
    HttpUploader    -- multipart POST of item content over httpx
"""

from transport.http_uploader import HttpUploader

__all__ = ["HttpUploader"]

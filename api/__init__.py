"""
API Package for KumaSync

Administrative HTTP surface built on aiohttp.
"""

from api.server import AdminServer, error_middleware

__all__ = [
    "AdminServer",
    "error_middleware",
]

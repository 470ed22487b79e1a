"""Wire encoders for the exposition endpoints."""

from logmonitor.core.encoding.ndjson import encode_logs
from logmonitor.core.encoding.prometheus import CONTENT_TYPE, encode_families

__all__ = ["CONTENT_TYPE", "encode_families", "encode_logs"]

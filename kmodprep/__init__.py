"""kmodprep: kernel module set preparation for vendor_boot and vendor_dlkm."""
from __future__ import annotations

__version__ = "0.1.0"

"""CyberGuard: encrypted content-addressable storage for security-awareness records."""

__version__ = "0.1.0"

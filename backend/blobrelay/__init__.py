"""blobrelay — chunked blob storage over rate-limited message backends."""

__version__ = "0.1.0"

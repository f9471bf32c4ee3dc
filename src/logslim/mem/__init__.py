"""Memory-optimized storage for raw event lines."""
from logslim.mem.line_store import StoredLines, decode_lines, encode_lines

__all__ = ["StoredLines", "encode_lines", "decode_lines"]

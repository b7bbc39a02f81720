"""sshhop: SSH host shortcuts and file transfers from the terminal."""

__version__ = "1.0.0"

"""An in-memory Unix-style file system with a buffer cache, write-ahead log, pipes, console, keyboard decoder, grep and a lottery scheduler."""

__version__ = "0.1.0"
"""I/O boundary: settings file, logging, HTTP model client."""

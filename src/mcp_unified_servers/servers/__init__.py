"""The example servers: ``calculator`` and ``file_manager``."""

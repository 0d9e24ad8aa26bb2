"""Object-storage backends: a filesystem store, container aliasing and bucket routing."""

__version__ = "0.1.0"
__all__ = ["backend", "container_wrapper", "filesystem", "multi", "multi_simple", "factory"]
from .loader import load_registry

__all__ = ["load_registry"]

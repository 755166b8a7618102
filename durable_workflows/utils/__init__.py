from .state import flatten_state_value, get_timeout_expiry

__all__ = ["flatten_state_value", "get_timeout_expiry"]

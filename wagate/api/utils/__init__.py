from .error_helpers import ERROR_STATUS_MAPPING, http_error_for, map_error_to_status

__all__ = ["ERROR_STATUS_MAPPING", "http_error_for", "map_error_to_status"]

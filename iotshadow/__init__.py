"""Device shadow core: subscription matching, message logs, shadow storage and downlink routing."""

__version__ = "0.1.0"

__all__ = [
    "match",
    "paging",
    "msglog",
    "shadow_store",
    "routing",
    "watch",
    "downlink",
]
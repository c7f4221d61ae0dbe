"""Utility functions."""

from roofcrm.utils.audit import get_client_ip, log_action, log_commission_action

__all__ = [
    "get_client_ip",
    "log_action",
    "log_commission_action",
]

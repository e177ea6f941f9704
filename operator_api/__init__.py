"""
Operator API.

HTTP access to MID submissions and the audit log.
"""

from .api import OperatorAPI, create_operator_app, json_response


__all__ = [
    "OperatorAPI",
    "create_operator_app",
    "json_response",
]

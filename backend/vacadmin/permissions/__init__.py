# Overview: Permission system package.
# Re-exports the role gate and its vocabulary.

from .definitions import Role, Action, ROLE_CAPABILITIES, APPROVAL_PATHS
from .gate import Verdict, can_perform

__all__ = [
    "Role",
    "Action",
    "ROLE_CAPABILITIES",
    "APPROVAL_PATHS",
    "Verdict",
    "can_perform",
]

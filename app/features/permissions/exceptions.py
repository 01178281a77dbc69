"""
Errors raised by the permission store and writer.
"""
from typing import Dict


class PermissionStoreError(Exception):
    """A read or write against the permission tables failed."""


class PermissionSaveError(Exception):
    """
    A bulk save left one or both permission kinds not fully saved.

    failures maps the kind ("menus" / "fields") to the error that stopped it.
    The role may be left with partial rows for a failed kind; re-running the
    save with the same permission set converges to the intended state.
    """

    def __init__(self, role_id: int, failures: Dict[str, Exception]):
        self.role_id = role_id
        self.failures = failures
        kinds = ", ".join(sorted(failures))
        super().__init__(f"Permissions not fully saved for role {role_id} ({kinds}), retry")

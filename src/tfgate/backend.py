"""Identifiers locating the remote Terraform state backend."""
from __future__ import annotations

from dataclasses import dataclass, fields


class BackendError(ValueError):
    """Raised when a backend identifier is missing."""


@dataclass(frozen=True, slots=True)
class BackendReference:
    """Opaque azurerm backend identifiers passed to ``terraform init``."""

    subscription_id: str
    resource_group: str
    storage_account: str
    container: str
    key: str

    def require_complete(self) -> None:
        """Raise :class:`BackendError` when any identifier is blank."""
        missing = [item.name for item in fields(self) if not getattr(self, item.name).strip()]
        if missing:
            raise BackendError(f"Backend identifiers must not be empty: {', '.join(missing)}.")

    def init_arguments(self) -> list[str]:
        """Return the ``-backend-config`` arguments for ``terraform init``."""
        pairs = (
            ("subscription_id", self.subscription_id),
            ("resource_group_name", self.resource_group),
            ("storage_account_name", self.storage_account),
            ("container_name", self.container),
            ("key", self.key),
        )
        return [f"-backend-config={name}={value}" for name, value in pairs]

    def to_dict(self) -> dict[str, str]:
        """Return a serialisable representation."""
        return {item.name: getattr(self, item.name) for item in fields(self)}


__all__ = ["BackendError", "BackendReference"]

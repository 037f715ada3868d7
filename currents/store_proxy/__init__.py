"""Store proxy service: the remote row store the sync executor writes to."""

from currents.store_proxy.app import create_app
from currents.store_proxy.storage import RowStorage

__all__ = ["create_app", "RowStorage"]

"""dnvm CLI commands."""

from dnvm.commands.install import install
from dnvm.commands.list_cmd import list_sdks
from dnvm.commands.select_cmd import select
from dnvm.commands.selfinstall import selfinstall
from dnvm.commands.update import update

__all__ = ["install", "list_sdks", "select", "selfinstall", "update"]

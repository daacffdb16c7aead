"""Table output for CLI commands.

Wraps Rich's Table so that long cells (hostname lists, issuer references)
wrap instead of being truncated.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich.table import Table as RichTable

if TYPE_CHECKING:
    from rich.console import ConsoleRenderable, RichCast


class Table(RichTable):
    """Rich Table whose columns fold long text by default.

    Usage:
        table = Table(title="Certificates")
        table.add_column("DNS Names")  # wraps long text
        table.add_column("Name", no_wrap=True)  # opt out
    """

    def add_column(
        self,
        header: ConsoleRenderable | RichCast | str = "",
        footer: ConsoleRenderable | RichCast | str = "",
        *,
        overflow: Any = "fold",
        **kwargs: Any,
    ) -> None:
        """Add a column with ``overflow="fold"`` unless told otherwise."""
        super().add_column(header, footer, overflow=overflow, **kwargs)

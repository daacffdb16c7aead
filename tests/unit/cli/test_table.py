"""Tests for cli/output/table.py."""

from __future__ import annotations

import pytest
from rich.console import Console
from rich.table import Column

from certificate_shim.cli.output.table import Table


@pytest.mark.unit
class TestTableDefaults:
    """Tests that Table applies its defaults and delegates to RichTable."""

    def test_add_column_uses_fold_overflow_by_default(self) -> None:
        """The custom add_column must default overflow to 'fold'."""
        table = Table()
        table.add_column("DNS Names")
        col: Column = table.columns[0]
        assert col.overflow == "fold"

    def test_add_column_respects_explicit_overflow(self) -> None:
        """Caller can override the default overflow value."""
        table = Table()
        table.add_column("Name", overflow="ellipsis")
        assert table.columns[0].overflow == "ellipsis"

    def test_add_column_passes_options_through(self) -> None:
        table = Table()
        table.add_column("Name", style="cyan", no_wrap=True, justify="right")
        col = table.columns[0]
        assert col.style == "cyan"
        assert col.no_wrap is True
        assert col.justify == "right"

    def test_add_column_header_text(self) -> None:
        table = Table()
        table.add_column("Renew Before")
        assert table.columns[0].header == "Renew Before"

    def test_long_cells_fold_instead_of_truncating(self) -> None:
        """Long hostnames wrap onto following lines rather than being cut off."""
        host = "a-very-long-subdomain-name.internal.example.com"
        table = Table(title="Certificates")
        table.add_column("Name", no_wrap=True)
        table.add_column("DNS Names")
        table.add_row("example-tls", host)

        console = Console(width=40)
        with console.capture() as cap:
            console.print(table)
        output = cap.get()

        assert "Certificates" in output
        assert "example-tls" in output
        assert "…" not in output
        assert "a-very-long" in output

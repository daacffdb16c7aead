"""CLI output helpers.

Usage:
    from certificate_shim.cli.output import Table

    table = Table(title="Certificates")
    table.add_column("Name", style="cyan")
    table.add_row("example-tls")
    console.print(table)
"""

from certificate_shim.cli.output.table import Table

__all__ = ["Table"]

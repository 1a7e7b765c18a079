"""Terminal output for CLI commands."""

import sys
from collections.abc import Iterable, Sequence


class Console:
    """Writes command output to stdout and errors to stderr.

    Streams are looked up at write time so redirected ``sys.stdout``
    and ``sys.stderr`` are honoured.
    """

    def write(self, *objects, sep: str = " ", end: str = "\n") -> None:
        sys.stdout.write(sep.join(str(o) for o in objects) + end)

    def error_write(self, *objects, sep: str = " ", end: str = "\n") -> None:
        sys.stderr.write(sep.join(str(o) for o in objects) + end)

    def table(self, rows: Iterable[Sequence], headers: Sequence[str] = ()) -> None:
        """Write rows as left-aligned columns."""
        rows = [[("" if cell is None else str(cell)) for cell in row] for row in rows]
        if headers:
            rows.insert(0, list(headers))
        if not rows:
            return
        widths = [max(len(row[i]) for row in rows) for i in range(len(rows[0]))]
        for row in rows:
            self.write("  ".join(cell.ljust(w) for cell, w in zip(row, widths)).rstrip())


ui = Console()

"""
Box-drawing table rendering for result sets.
"""

from enum import StrEnum
from typing import Sequence as Seq

PADDING = 2


class Alignment(StrEnum):
    """
    How cell text is placed within its column.
    """

    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


def pad(text: str | None, width: int, alignment: Alignment) -> str:
    """
    Pad text to the given width. Text that is None, or that's already wider
    than width, is returned unpadded. Nothing is ever truncated.

    :param text: the cell text, or None
    :param width: the total width of the cell
    :param alignment: where the text goes within the cell
    """
    if text is None:
        return ""

    if width < len(text):
        return text

    match alignment:
        case Alignment.LEFT:
            return text.ljust(width)
        case Alignment.RIGHT:
            return text.rjust(width)
        case Alignment.CENTER:
            # str.center() puts the odd space on the left for some lengths,
            # so split it by hand.
            left = (width - len(text)) // 2
            right = width - len(text) - left
            return f"{' ' * left}{text}{' ' * right}"


def column_widths(
    columns: Seq[str], rows: Seq[Seq[str | None]]
) -> list[int]:
    """
    Compute the display width of each column: the widest of the header and
    all cells, plus PADDING.
    """
    widths = [len(col) for col in columns]
    for row in rows:
        for i, cell in enumerate(row):
            if cell is not None:
                widths[i] = max(widths[i], len(cell))

    return [w + PADDING for w in widths]


def render(
    columns: Seq[str],
    rows: Seq[Seq[str | None]],
    alignment: Alignment = Alignment.RIGHT,
    headers: bool = True,
) -> str:
    """
    Render a result set as a text table. This is a pure function: the same
    input always produces the same output.

    :param columns: the column names, in order
    :param rows: the rows, each a sequence of cell strings (or None), in
        column order
    :param alignment: cell alignment for every column
    :param headers: whether to render the header row and the stripe under it

    :returns: the table, without a trailing newline

    :raises ValueError: if a row doesn't have one cell per column
    """
    for row in rows:
        if len(row) != len(columns):
            raise ValueError(
                f"Row has {len(row)} cells, but there are {len(columns)} "
                "columns."
            )

    widths = column_widths(columns, rows)

    def border(left: str, middle: str, right: str) -> str:
        return left + middle.join("─" * w for w in widths) + right

    def line(cells: Seq[str | None]) -> str:
        fields = [pad(c, w, alignment) for c, w in zip(cells, widths)]
        return "│" + "│".join(fields) + "│"

    lines = [border("╭", "┬", "╮")]
    if headers:
        lines.append(line(columns))
        lines.append(border("├", "┼", "┤"))

    lines.extend(line(row) for row in rows)
    lines.append(border("╰", "┴", "╯"))
    return "\n".join(lines)

import io
import re
from decimal import Decimal
from typing import List, Tuple

from PIL import Image, ImageDraw, ImageFont

from .report import MonthlyReport, parse_month


SCALE = 2
PADDING = 24
ROW_HEIGHT = 28
HEADER_HEIGHT = 72
BACKGROUND = "#ffffff"
TEXT = "#111827"
MUTED = "#6b7280"
INCOME_COLOR = "#059669"
EXPENSE_COLOR = "#e11d48"
RULE = "#e5e7eb"

# (title, width, alignment)
COLUMNS: List[Tuple[str, int, str]] = [
    ("Date", 90, "left"),
    ("Description", 260, "left"),
    ("Debit (In)", 120, "center"),
    ("Credit (Out)", 120, "center"),
    ("Balance", 130, "right"),
]

EMPTY_MESSAGE = "No transactions found for this month."


def _money(value: Decimal) -> str:
    return f"{value:,.2f}"


def _font(size: int):
    try:
        return ImageFont.load_default(size=size)
    except TypeError:
        # Pillow < 10.1 has a single fixed-size bitmap font
        return ImageFont.load_default()


def _draw_cell(draw: ImageDraw.ImageDraw, x: int, y: int, width: int, text: str, align: str, font, fill: str):
    text_width = draw.textlength(text, font=font)
    if align == "right":
        x = x + width - text_width
    elif align == "center":
        x = x + (width - text_width) / 2
    draw.text((x, y), text, font=font, fill=fill)


def _column_color(title: str) -> str:
    if title.startswith("Debit"):
        return INCOME_COLOR
    if title.startswith("Credit"):
        return EXPENSE_COLOR
    return TEXT


def _fit(draw: ImageDraw.ImageDraw, text: str, width: int, font) -> str:
    if draw.textlength(text, font=font) <= width:
        return text
    while text and draw.textlength(text + "...", font=font) > width:
        text = text[:-1]
    return text + "..."


def render_report_png(property_name: str, report: MonthlyReport) -> bytes:
    """Render the monthly report table as a PNG image."""
    table_width = sum(width for _, width, _ in COLUMNS)
    body_rows = max(1, len(report.rows))
    width = (table_width + PADDING * 2) * SCALE
    height = (HEADER_HEIGHT + ROW_HEIGHT * (body_rows + 2) + PADDING * 2) * SCALE

    image = Image.new("RGB", (width, height), BACKGROUND)
    draw = ImageDraw.Draw(image)

    title_font = _font(20 * SCALE)
    font = _font(12 * SCALE)
    bold = _font(13 * SCALE)

    y = PADDING * SCALE
    _draw_cell(draw, 0, y, width, property_name, "center", title_font, TEXT)
    y += 30 * SCALE
    _draw_cell(draw, 0, y, width, f"Financial Report - {report.title}", "center", font, MUTED)
    y = (PADDING + HEADER_HEIGHT) * SCALE

    x = PADDING * SCALE
    for title, col_width, align in COLUMNS:
        _draw_cell(draw, x, y, col_width * SCALE, title, align, bold, _column_color(title))
        x += col_width * SCALE
    y += ROW_HEIGHT * SCALE
    draw.line([(PADDING * SCALE, y - 6 * SCALE), (width - PADDING * SCALE, y - 6 * SCALE)], fill=RULE, width=2 * SCALE)

    if report.is_empty:
        _draw_cell(draw, 0, y, width, EMPTY_MESSAGE, "center", font, MUTED)
        y += ROW_HEIGHT * SCALE
    for row in report.rows:
        cells = [
            row.date.strftime("%d %b"),
            row.description,
            _money(row.income) if row.income > 0 else "-",
            _money(row.expense) if row.expense > 0 else "-",
            _money(row.balance),
        ]
        x = PADDING * SCALE
        for (title, col_width, align), text in zip(COLUMNS, cells):
            cell = _fit(draw, text, (col_width - 8) * SCALE, font)
            _draw_cell(draw, x, y, col_width * SCALE, cell, align, font, _column_color(title))
            x += col_width * SCALE
        y += ROW_HEIGHT * SCALE

    draw.line([(PADDING * SCALE, y), (width - PADDING * SCALE, y)], fill=RULE, width=2 * SCALE)
    y += 8 * SCALE
    _draw_cell(draw, PADDING * SCALE, y, table_width * SCALE, f"Balance: {_money(report.balance)}", "right", bold, TEXT)

    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def export_filename(property_name: str, month: str) -> str:
    first = parse_month(month)
    safe_name = re.sub(r"[^A-Za-z0-9_-]+", "_", property_name).strip("_") or "report"
    return f"{safe_name}_{first.strftime('%B')}-{first.year}.png"

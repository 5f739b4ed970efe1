"""
utils/export.py — Excel export of the garden layout using openpyxl.

Generates .xlsx files with one sheet per patch and a styled header row.
Columns: X, Y, Plant, Variety of, Category, Stage.
"""

import re
from io import BytesIO

import openpyxl
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side


CATEGORY_FILLS = {
    'vegetable': PatternFill(start_color='4CAF50', end_color='4CAF50', fill_type='solid'),
    'fruit': PatternFill(start_color='D32F2F', end_color='D32F2F', fill_type='solid'),
    'herb': PatternFill(start_color='00897B', end_color='00897B', fill_type='solid'),
    'flower': PatternFill(start_color='7B1FA2', end_color='7B1FA2', fill_type='solid'),
    'tree': PatternFill(start_color='6D4C41', end_color='6D4C41', fill_type='solid'),
    'shrub': PatternFill(start_color='FFB300', end_color='FFB300', fill_type='solid'),
}

HEADER_FONT = Font(name='Calibri', bold=True, color='FFFFFF', size=11)
HEADER_FILL = PatternFill(start_color='1565C0', end_color='1565C0', fill_type='solid')
HEADER_ALIGNMENT = Alignment(horizontal='center', vertical='center', wrap_text=True)
HEADER_BORDER = Border(
    bottom=Side(style='thin', color='0D47A1'),
    right=Side(style='thin', color='E2E8F0'),
)
CELL_BORDER = Border(
    bottom=Side(style='thin', color='E2E8F0'),
    right=Side(style='thin', color='E2E8F0'),
)

COLUMNS = ['X', 'Y', 'Plant', 'Variety of', 'Category', 'Stage']
COLUMN_WIDTHS = {'A': 6, 'B': 6, 'C': 22, 'D': 18, 'E': 14, 'F': 12}

# Characters Excel refuses in sheet titles
_INVALID_TITLE_CHARS = re.compile(r'[\[\]:*?/\\]')


def sheet_title(name):
    """A valid Excel sheet title (max 31 chars, no []:*?/\\)."""
    title = _INVALID_TITLE_CHARS.sub('-', name or '').strip() or 'Patch'
    return title[:31]


def _build_sheet(ws, items, plant_lookup):
    """Populate a worksheet with one row per planted item."""
    for col_idx, col_name in enumerate(COLUMNS, 1):
        cell = ws.cell(row=1, column=col_idx, value=col_name)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGNMENT
        cell.border = HEADER_BORDER

    # Row-major, like the grid itself
    ordered = sorted(items, key=lambda i: (i.y, i.x))
    for row_idx, item in enumerate(ordered, 2):
        plant = item.plant or plant_lookup(item.plant_id)
        parent = plant_lookup(plant.parent_id) if plant and plant.parent_id else None
        category = plant.category if plant else ''

        ws.cell(row=row_idx, column=1, value=item.x).border = CELL_BORDER
        ws.cell(row=row_idx, column=2, value=item.y).border = CELL_BORDER
        ws.cell(row=row_idx, column=3, value=plant.name if plant else item.plant_id).border = CELL_BORDER
        ws.cell(row=row_idx, column=4, value=parent.name if parent else None).border = CELL_BORDER

        cat_cell = ws.cell(row=row_idx, column=5, value=category)
        cat_cell.border = CELL_BORDER
        if category in CATEGORY_FILLS:
            cat_cell.fill = CATEGORY_FILLS[category]
            cat_cell.font = Font(color='FFFFFF', bold=True)

        ws.cell(row=row_idx, column=6, value=item.stage).border = CELL_BORDER

    for column, width in COLUMN_WIDTHS.items():
        ws.column_dimensions[column].width = width

    ws.freeze_panes = 'A2'


def generate_excel(garden):
    """Generate an Excel workbook with one sheet per non-template patch.

    Returns:
        (BytesIO buffer, filename) on success, (None, None) when there are no patches.
    """
    patches = [p for p in garden.registry.all() if p.type != 'template']
    if not patches:
        return None, None

    wb = openpyxl.Workbook()
    wb.remove(wb.active)

    for patch in patches:
        # openpyxl suffixes duplicate titles on its own
        ws = wb.create_sheet(title=sheet_title(patch.name))
        _build_sheet(ws, garden.engine.occupants(patch.id), garden.catalog.get)

    buffer = BytesIO()
    wb.save(buffer)
    buffer.seek(0)

    return buffer, "garden_layout.xlsx"

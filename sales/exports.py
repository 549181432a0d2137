from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Font
from reportlab.lib.pagesizes import A4
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

ORDER_COLUMNS = [
    ("Order Number", "order_number"),
    ("Date", "order_date"),
    ("Type", "order_type"),
    ("Customer", "customer_name"),
    ("Category", "category"),
    ("Grand Total", "grand_total"),
]


def _cell_value(row, key):
    value = row[key]
    if key == "order_date":
        return value.strftime("%Y-%m-%d %H:%M")
    return value


def render_excel(summary, orders):
    """Render report data as an XLSX workbook with Summary and Orders sheets."""
    workbook = Workbook()
    bold = Font(bold=True)

    sheet = workbook.active
    sheet.title = "Summary"
    sheet.append(["Total Orders", summary["total_order"]])
    sheet.append(["Total Omzet", summary["total_omzet"]])
    sheet.append(["All Menu Sales", summary["all_menu_sales"]])
    sheet.append([])
    sheet.append(["Category", "Product", "Units Sold"])
    for cell in sheet[sheet.max_row]:
        cell.font = bold
    for category, products in summary["sales_by_category"].items():
        for product, units in products.items():
            sheet.append([category, product, units])
    sheet.column_dimensions["A"].width = 20
    sheet.column_dimensions["B"].width = 30

    sheet = workbook.create_sheet("Orders")
    sheet.append([title for title, _ in ORDER_COLUMNS])
    for cell in sheet[1]:
        cell.font = bold
    for row in orders:
        sheet.append([_cell_value(row, key) for _, key in ORDER_COLUMNS])
        sheet.cell(row=sheet.max_row, column=len(ORDER_COLUMNS)).number_format = "#,##0.00"
    for column, width in zip("ABCDEF", (22, 18, 12, 24, 30, 16)):
        sheet.column_dimensions[column].width = width

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


ORDER_COLUMN_X = (40, 150, 245, 310, 410, 500)
ORDER_TABLE_RIGHT = 575
CELL_PADDING = 6
PAGE_BOTTOM = 60
ELLIPSIS = "..."


def fit_text(text, max_width, font_name="Helvetica", font_size=9):
    """Shorten `text` to fit `max_width` points, marking the cut with an ellipsis."""
    text = str(text)
    if stringWidth(text, font_name, font_size) <= max_width:
        return text
    while text and stringWidth(text + ELLIPSIS, font_name, font_size) > max_width:
        text = text[:-1]
    return text.rstrip() + ELLIPSIS


def _column_widths():
    edges = ORDER_COLUMN_X[1:] + (ORDER_TABLE_RIGHT,)
    return [right - left - CELL_PADDING for left, right in zip(ORDER_COLUMN_X, edges)]


def _draw_orders_header(c, y):
    c.setFont("Helvetica-Bold", 9)
    for (title, _), x in zip(ORDER_COLUMNS, ORDER_COLUMN_X):
        c.drawString(x, y, title)
    c.setFont("Helvetica", 9)
    return y - 14


def render_pdf(summary, orders):
    """Render report data as an A4 PDF: summary, category lines, then the orders table."""
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4

    c.setFont("Helvetica-Bold", 16)
    c.drawString(40, height - 50, "Sales Report")
    c.setFont("Helvetica", 10)
    y = height - 80
    c.drawString(40, y, f"Total Orders: {summary['total_order']}")
    y -= 16
    c.drawString(40, y, f"Total Omzet: {summary['total_omzet']:,.2f}")
    y -= 16
    c.drawString(40, y, f"All Menu Sales: {summary['all_menu_sales']}")
    y -= 26

    c.setFont("Helvetica-Bold", 11)
    c.drawString(40, y, "Sales by Category")
    y -= 16
    c.setFont("Helvetica", 10)
    for category, products in summary["sales_by_category"].items():
        c.drawString(40, y, category)
        y -= 14
        for product, units in products.items():
            c.drawString(60, y, fit_text(f"{product}: {units}", width - 100, font_size=10))
            y -= 14
            if y < PAGE_BOTTOM:
                c.showPage()
                c.setFont("Helvetica", 10)
                y = height - 50

    y -= 12
    if y < PAGE_BOTTOM + 30:
        c.showPage()
        y = height - 50
    c.setFont("Helvetica-Bold", 11)
    c.drawString(40, y, "Orders")
    y = _draw_orders_header(c, y - 18)

    for row in orders:
        if y < PAGE_BOTTOM:
            c.showPage()
            y = _draw_orders_header(c, height - 50)
        values = [_cell_value(row, key) for _, key in ORDER_COLUMNS]
        values[-1] = f"{values[-1]:,.2f}"
        for value, x, max_width in zip(values, ORDER_COLUMN_X, _column_widths()):
            c.drawString(x, y, fit_text(value, max_width))
        y -= 14

    c.save()
    return buffer.getvalue()

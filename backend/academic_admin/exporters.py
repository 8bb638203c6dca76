from io import BytesIO
from typing import Dict, List, Sequence

from openpyxl import Workbook
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas


# Las filas llegan ya resueltas y traducidas; aquí sólo se vuelcan
GRADE_COLUMNS = ("bimester", "course_code", "course_name", "credits", "percentage_grade", "letter_grade", "grade_points")


def _cell(value) -> str:
    if value is None:
        return "-"
    return str(value)


def export_grades_excel(title: str, headers: Sequence[str], rows: List[Dict]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Notas"
    ws.append([title])
    ws.append(list(headers))
    for row in rows:
        ws.append([row.get(column) for column in GRADE_COLUMNS])
    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def export_grades_pdf(title: str, headers: Sequence[str], rows: List[Dict], summary: Sequence[str] = ()) -> bytes:
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4
    y = height - 50
    c.setFont("Helvetica-Bold", 14)
    c.drawString(50, y, title)
    y -= 24
    c.setFont("Helvetica", 9)
    c.drawString(50, y, " | ".join(headers))
    y -= 16
    for row in rows:
        # los nombres bilingües traen salto de línea; se imprimen en una sola línea
        values = [_cell(row.get(column)).replace("\n", " / ") for column in GRADE_COLUMNS]
        c.drawString(50, y, " | ".join(values))
        y -= 14
        if y < 60:
            c.showPage()
            y = height - 50
            c.setFont("Helvetica", 9)
    y -= 10
    for line in summary:
        c.drawString(50, y, line)
        y -= 14
    c.save()
    return buffer.getvalue()

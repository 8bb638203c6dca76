"""Convert a flat class-enrollment spreadsheet into the JSONL accepted by
``POST /class-enrollments/import``.

The first sheet must have a header row with the columns ``programCode``,
``courseCode``, ``bimesterName``, ``groupNumber``, ``professorEmail``,
``studentCode`` and ``percentageGrade``. ``programId``/``courseId``/``studentId``
and ``professorName`` are accepted as older spellings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import typer
from openpyxl import load_workbook

from academic_admin.services.enrollment_import import ImportRow, group_rows, to_jsonl

APP = typer.Typer(add_completion=False, help="Agrupa filas de Excel por clase y genera un archivo .jsonl.")

COLUMN_ALIASES = {
    "program_code": ("programCode", "programId"),
    "course_code": ("courseCode", "courseId"),
    "bimester_name": ("bimesterName",),
    "group_number": ("groupNumber",),
    "professor_email": ("professorEmail", "professorName", "email"),
    "student_code": ("studentCode", "studentId"),
    "percentage_grade": ("percentageGrade",),
}


def _text(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip() or None
    return value


def read_rows(path: Path) -> List[ImportRow]:
    workbook = load_workbook(path, read_only=True, data_only=True)
    try:
        sheet = workbook.worksheets[0]
        rows = sheet.iter_rows(values_only=True)
        header = next(rows, None)
        if header is None:
            return []
        positions = {str(name).strip(): index for index, name in enumerate(header) if name is not None}
        result: List[ImportRow] = []
        for values in rows:
            if values is None or all(v is None for v in values):
                continue
            fields: Dict[str, Any] = {}
            for attr, aliases in COLUMN_ALIASES.items():
                index = next((positions[a] for a in aliases if a in positions), None)
                fields[attr] = _text(values[index]) if index is not None and index < len(values) else None
            result.append(ImportRow(**fields))
        return result
    finally:
        workbook.close()


@APP.command()
def convert(
    input_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Archivo .xlsx de origen"),
    output_path: Path = typer.Option(None, "--output", "-o", help="Destino; por defecto junto al origen con extensión .jsonl"),
) -> None:
    rows = read_rows(input_path)
    if not rows:
        typer.secho("El archivo Excel no tiene filas.", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Filas leídas: {len(rows)}")

    records = group_rows(rows)
    kept = sum(len(record.students) for record in records.values())
    if kept < len(rows):
        typer.secho(f"Filas descartadas por datos incompletos: {len(rows) - kept}", fg=typer.colors.YELLOW)

    target = output_path or input_path.with_suffix(".jsonl")
    target.write_text(to_jsonl(records.values()) + "\n", encoding="utf-8")
    typer.secho(f"{len(records)} clases, {kept} matrículas escritas en {target}", fg=typer.colors.GREEN)


if __name__ == "__main__":
    APP()

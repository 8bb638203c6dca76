from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
import secrets
from typing import Dict, Optional

import typer
from dotenv import dotenv_values
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from academic_admin.services.grading import load_grade_scale, scale_as_table

APP = typer.Typer(add_completion=False, help="Crea o actualiza el archivo .env del backend académico.")

BACKEND_DIR = Path(__file__).resolve().parents[1]
ROOT_DIR = BACKEND_DIR.parent
ENV_PATH = ROOT_DIR / ".env"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _load_existing_env() -> Dict[str, str]:
    if not ENV_PATH.exists():
        return {}
    raw = dotenv_values(ENV_PATH)
    return {k: v for k, v in raw.items() if isinstance(k, str) and v is not None}


def _format_env_value(value: str) -> str:
    if any(ch in value for ch in ' #"\n'):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return value


def _check_database(url: str) -> Optional[str]:
    """Return an error message, or ``None`` when ``SELECT 1`` succeeds."""
    engine = None
    try:
        engine = create_engine(url, pool_pre_ping=True)
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return None
    except SQLAlchemyError as exc:
        return str(exc)
    finally:
        if engine is not None:
            engine.dispose()


def _prompt_choice(label: str, choices, default: str) -> str:
    while True:
        value = typer.prompt(f"{label} [{'/'.join(choices)}]", default=default).strip()
        if value in choices:
            return value
        typer.secho("Selecciona uno de los valores permitidos.", fg=typer.colors.RED)


def _prompt_database_url(existing_value: Optional[str]) -> str:
    default_value = existing_value or "sqlite:///./data.db"
    while True:
        candidate = typer.prompt("DATABASE_URL", default=default_value).strip()
        if not candidate:
            typer.secho("La cadena de conexión no puede estar vacía.", fg=typer.colors.RED)
            continue
        if not typer.confirm("¿Validar la conexión ahora?", default=True):
            return candidate
        error = _check_database(candidate)
        if error is None:
            typer.secho("Conexión exitosa.", fg=typer.colors.GREEN)
            return candidate
        typer.secho("No se pudo conectar:", fg=typer.colors.RED)
        typer.echo(error)
        if not typer.confirm("¿Intentar con otro valor?", default=True):
            return candidate
        default_value = candidate


def _prompt_grade_scale(existing_value: Optional[str]) -> str:
    while True:
        raw = typer.prompt(
            "GRADE_SCALE (JSON [[letra, mínimo, puntos], ...]; vacío para la escala por defecto)",
            default=existing_value or "",
            show_default=bool(existing_value),
        ).strip()
        try:
            scale = load_grade_scale(raw)
        except ValueError as exc:
            typer.secho(str(exc), fg=typer.colors.RED)
            continue
        for band in scale_as_table(scale):
            typer.echo(f"  {band['letter']:>3}  >= {band['min_percentage']:>5}  {band['grade_points']}")
        return raw


def _collect_values(existing: Dict[str, str]) -> Dict[str, str]:
    values: Dict[str, str] = {}

    app_env = typer.prompt("APP_ENV", default=existing.get("APP_ENV") or "dev").strip() or "dev"
    values["APP_ENV"] = app_env
    production = app_env in {"prod", "production"}
    values["DEBUG"] = "true" if typer.confirm("¿Activar modo DEBUG?", default=not production) else "false"
    values["LOG_LEVEL"] = _prompt_choice("LOG_LEVEL", LOG_LEVELS, existing.get("LOG_LEVEL") or "INFO")

    secret_default = existing.get("SECRET_KEY") or secrets.token_urlsafe(32)
    values["SECRET_KEY"] = typer.prompt("SECRET_KEY", default=secret_default, hide_input=True, show_default=False).strip() or secret_default
    values["ALGORITHM"] = typer.prompt("ALGORITHM", default=existing.get("ALGORITHM") or "HS256").strip()
    expire = typer.prompt(
        "ACCESS_TOKEN_EXPIRE_MINUTES (vacío para tokens sin expiración)",
        default=existing.get("ACCESS_TOKEN_EXPIRE_MINUTES") or "",
        show_default=False,
    ).strip()
    if expire:
        values["ACCESS_TOKEN_EXPIRE_MINUTES"] = expire

    values["DATABASE_URL"] = _prompt_database_url(existing.get("DATABASE_URL"))
    values["DEFAULT_LOCALE"] = _prompt_choice("DEFAULT_LOCALE", ("es", "en"), existing.get("DEFAULT_LOCALE") or "es")
    values["CORS_ORIGINS"] = typer.prompt(
        "CORS_ORIGINS (separados por coma)",
        default=existing.get("CORS_ORIGINS") or "http://localhost:3000,http://127.0.0.1:3000",
    ).strip()
    grade_scale = _prompt_grade_scale(existing.get("GRADE_SCALE"))
    if grade_scale:
        values["GRADE_SCALE"] = grade_scale
    return values


def _write_env_file(managed: Dict[str, str], previous: Dict[str, str]) -> None:
    lines = [
        "# Archivo generado por backend/scripts/configure_env.py",
        f"# {datetime.now(UTC).isoformat()}",
        "",
    ]
    lines.extend(f"{key}={_format_env_value(value)}" for key, value in managed.items())
    extras = {k: v for k, v in previous.items() if k not in managed}
    if extras:
        lines.extend(["", "# Variables adicionales preservadas"])
        lines.extend(f"{key}={_format_env_value(extras[key])}" for key in sorted(extras))
    lines.append("")
    ENV_PATH.write_text("\n".join(lines), encoding="utf-8")


@APP.command()
def run() -> None:
    typer.secho("Configurador interactivo de .env", fg=typer.colors.CYAN, bold=True)
    typer.echo(f"Ubicación destino: {ENV_PATH}")
    existing = _load_existing_env()
    values = _collect_values(existing)

    typer.echo("")
    for key, value in values.items():
        typer.echo(f"  - {key}: {'********' if key == 'SECRET_KEY' else value}")
    if not typer.confirm("¿Guardar estos cambios en el .env?", default=True):
        typer.echo("No se realizaron modificaciones.")
        raise typer.Exit(code=0)

    _write_env_file(values, existing)
    typer.secho("Archivo .env actualizado correctamente.", fg=typer.colors.GREEN)


if __name__ == "__main__":
    APP()

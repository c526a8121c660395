from __future__ import annotations

import json
import uuid
from typing import Iterable, List, Tuple

import click
from flask import Flask

from ido_extractor.application.connection_service import ConnectionService
from ido_extractor.application.execution_service import ExecutionService
from ido_extractor.application.job_service import JobService
from ido_extractor.db import get_db
from ido_extractor.domain.contracts import ColumnPatch, JobRunInput
from ido_extractor.errors import AppError
from ido_extractor.ido.client import IdoError
from ido_extractor.infrastructure.repositories.auth_repository import AuthRepository
from ido_extractor.observability import bind_request_id


def _split_assignment(raw: str, option: str) -> Tuple[str, str]:
    name, separator, value = str(raw).partition("=")
    if not separator or not name.strip():
        raise click.BadParameter(f"expected NAME=VALUE, got {raw!r}", param_hint=option)
    return name.strip(), value


def parse_assignments(values: Iterable[str], option: str) -> dict:
    return dict(_split_assignment(item, option) for item in values)


def parse_column_patches(added: Iterable[str], modified: Iterable[str]) -> List[ColumnPatch]:
    patches = [ColumnPatch(*_split_assignment(item, "--add-column"), mode="add") for item in added]
    patches.extend(ColumnPatch(*_split_assignment(item, "--set-column"), mode="modify") for item in modified)
    return patches


def _owner_id_for(db, email: str) -> int:
    user = AuthRepository().find_user_by_email(db, str(email or "").strip().lower())
    if not user:
        raise click.ClickException(f"No application user with email {email}.")
    return int(user["id"])


def register_jobs_cli(app: Flask) -> None:
    @app.cli.group("jobs")
    def jobs_group() -> None:
        """List, seed and run IDO extraction jobs."""

    @jobs_group.command("list")
    @click.option("--email", required=True, help="Application user that owns the jobs.")
    def jobs_list(email: str) -> None:
        db = get_db()
        owner_id = _owner_id_for(db, email)
        for job in JobService().list_jobs(db, owner_id):
            origin = "own" if job.user_id == owner_id else "template"
            click.echo(f"{job.job_name}\t{job.ido_name}\t{job.output_format}\t{origin}")

    @jobs_group.command("seed-default")
    @click.option("--email", required=True)
    def jobs_seed_default(email: str) -> None:
        db = get_db()
        created = JobService().ensure_default_job(db, _owner_id_for(db, email))
        db.commit()
        click.echo("Default job created." if created else "Default job already present.")

    @jobs_group.command("run")
    @click.argument("job_name")
    @click.option("--email", required=True)
    @click.option("--username", required=True, help="IDO username of the stored configuration.")
    @click.option("--encryption-password", prompt=True, hide_input=True)
    @click.option("--filter", "filters", multiple=True, metavar="NAME=VALUE")
    @click.option("--add-column", "added", multiple=True, metavar="NAME=VALUE")
    @click.option("--set-column", "modified", multiple=True, metavar="NAME=VALUE")
    @click.option("--format", "output_format", type=click.Choice(["csv", "xlsx"]), default=None)
    @click.option("--output-dir", default=None)
    def jobs_run(
        job_name: str,
        email: str,
        username: str,
        encryption_password: str,
        filters: Tuple[str, ...],
        added: Tuple[str, ...],
        modified: Tuple[str, ...],
        output_format: str | None,
        output_dir: str | None,
    ) -> None:
        db = get_db()
        owner_id = _owner_id_for(db, email)
        run_input = JobRunInput(
            job_name=job_name,
            filter_values=parse_assignments(filters, "--filter"),
            column_patches=parse_column_patches(added, modified),
            output_format=output_format,
            output_dir=output_dir,
        )
        with bind_request_id(f"cli-{uuid.uuid4()}"):
            try:
                client = ConnectionService.from_config(app.config).open_client(
                    db, owner_id, username, encryption_password
                )
                result = ExecutionService().run_job(
                    db,
                    owner_id,
                    client,
                    run_input,
                    default_output_dir=str(app.config["EXPORT_DIR"]),
                )
            except (AppError, IdoError) as exc:
                message = (exc.details or exc.user_message()) if isinstance(exc, AppError) else str(exc)
                raise click.ClickException(message) from exc

        for entry in result["log"]:
            click.echo(f"[{entry['type']}] {entry['message']}")
        click.echo(json.dumps({key: value for key, value in result.items() if key != "log"}, default=str))

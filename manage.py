from societyhub.app import create_app, db
import os

from flask_migrate import Migrate
from flask.cli import FlaskGroup
import click
from flask import current_app
from societyhub.services.certificates import (
    CertificateError,
    CertificateIssuer,
    orphan_certificate_files,
)
from societyhub.services.templates import create_template


migrate = Migrate()


def create_societyhub_app():
    app = create_app()
    migrate.init_app(app, db)
    return app


cli = FlaskGroup(create_app=create_societyhub_app)


def _base_url(base_url: str | None) -> str:
    return base_url or current_app.config.get("PUBLIC_BASE_URL") or "http://localhost:5000"


@cli.command("gen_cert")
@click.option("--registration", "registration_id", required=True, type=int)
@click.option("--template", "template_id", required=True, type=int)
@click.option("--issued-by", "issued_by", required=True, type=int)
@click.option("--base-url", "base_url", default=None)
def gen_cert(registration_id: int, template_id: int, issued_by: int, base_url):
    """Generate the participant certificate for one registration."""
    issuer = CertificateIssuer.from_config(db.session)
    try:
        cert = issuer.issue_for_registration(
            registration_id, template_id, issued_by, _base_url(base_url)
        )
    except CertificateError as exc:
        click.echo(str(exc), err=True)
        raise SystemExit(1)
    click.echo(cert.file_path)


@cli.command("issue_certs")
@click.option("--event", "event_id", required=True, type=int)
@click.option("--template", "template_id", required=True, type=int)
@click.option("--issued-by", "issued_by", required=True, type=int)
@click.option("--base-url", "base_url", default=None)
def issue_certs(event_id: int, template_id: int, issued_by: int, base_url):
    """Generate participant certificates for every eligible registration."""
    issuer = CertificateIssuer.from_config(db.session)
    try:
        result = issuer.issue_for_event(
            event_id, template_id, issued_by, _base_url(base_url)
        )
    except CertificateError as exc:
        click.echo(str(exc), err=True)
        raise SystemExit(1)
    for cert in result.created:
        click.echo(f"created registration={cert.registration_id} path={cert.file_path}")
    for item in result.skipped:
        click.echo(f"skipped registration={item.registration_id} reason={item.reason}")
    click.echo(f"created={len(result.created)} skipped={len(result.skipped)}")


@cli.command("add_template")
@click.option("--society", "society_id", required=True, type=int)
@click.option("--name", "name", required=True)
@click.option(
    "--file", "html_file", required=True, type=click.Path(exists=True, dir_okay=False)
)
@click.option("--created-by", "created_by", default=None, type=int)
def add_template(society_id: int, name: str, html_file: str, created_by):
    """Register an HTML certificate template for a society."""
    with open(html_file, "r", encoding="utf-8") as handle:
        html = handle.read()
    try:
        template = create_template(
            db.session,
            society_id=society_id,
            name=name,
            html=html,
            created_by=created_by,
        )
    except (LookupError, ValueError) as exc:
        click.echo(str(exc), err=True)
        raise SystemExit(1)
    click.echo(f"template_id={template.template_id} path={template.template_file_path}")


@cli.command("purge_orphan_certs")
@click.option(
    "--dry-run", is_flag=True, help="List orphaned certificate PDFs without deleting"
)
def purge_orphan_certs(dry_run: bool):
    """Delete certificate PDFs that no certificate row points at."""
    upload_root = current_app.config["UPLOAD_ROOT"]
    if not os.path.isdir(os.path.join(upload_root, "certificates")):
        click.echo("Certificate directory missing", err=True)
        return
    if not dry_run and not current_app.config.get("CERT_PURGE_ALLOWED"):
        click.echo(
            "Refusing to delete in production without ALLOW_CERT_PURGE=1", err=True
        )
        return

    orphans = orphan_certificate_files(db.session, upload_root)
    removed = failed = 0
    for path in orphans:
        if dry_run:
            click.echo(f"orphan {path}")
            continue
        try:
            os.remove(path)
        except OSError:
            failed += 1
            current_app.logger.exception("[CERT-PURGE] failed to remove %s", path)
            continue
        removed += 1
        click.echo(f"removed {path}")

    summary = f"orphans={len(orphans)} removed={removed} failed={failed}"
    if dry_run:
        summary += " (dry run)"
    click.echo(summary)
    current_app.logger.info("[CERT-PURGE] %s", summary)


if __name__ == "__main__":
    cli()

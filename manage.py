from eventcerts.app import create_app, db
import csv
import os
import sys

from flask_migrate import Migrate
from flask.cli import FlaskGroup
import click
from flask import current_app
from eventcerts.models import Event, GeneratedCertificate
from eventcerts.shared.certificates import (
    build_context,
    generate_batch,
    generate_certificate,
)
from eventcerts.shared.codes import parse_verification_payload
from eventcerts.shared.errors import CertificateError, MetadataPersistFailure
from eventcerts.shared.records import find_for_verification, record_delivery_result
from eventcerts.shared.storage import TEMPLATES_DIRNAME, FileArtifactSink, FileTemplateStore
from eventcerts.shared.submissions import (
    event_config_from_model,
    parse_submission,
    sanitize_event_layout,
)


migrate = Migrate()


def create_eventcerts_app():
    app = create_app()
    migrate.init_app(app, db)
    return app


cli = FlaskGroup(create_app=create_eventcerts_app)


def _template_store() -> FileTemplateStore:
    site_root = current_app.config.get("SITE_ROOT", "/srv")
    return FileTemplateStore(os.path.join(site_root, TEMPLATES_DIRNAME))


def _parse_floats(raw: str, count: int, label: str) -> list[float]:
    parts = [p for p in (raw or "").split(",") if p.strip()]
    if len(parts) != count:
        raise click.BadParameter(f"expected {count} comma-separated numbers", param_hint=label)
    try:
        return [float(p) for p in parts]
    except ValueError:
        raise click.BadParameter("values must be numbers", param_hint=label) from None


def _load_event(event_id: int) -> Event | None:
    event = db.session.get(Event, event_id)
    if not event:
        click.echo(f"Event {event_id} not found", err=True)
    return event


@cli.command("create_event")
@click.option("--name", "event_name", required=True)
@click.option("--template", "template_file", required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--name-box", required=True, help="x,y,w,h as fractions of the template")
@click.option("--qr", "qr_box", required=True, help="x,y,size as fractions of the template")
@click.option("--font-family", default=None)
@click.option("--font-size", type=float, default=None)
@click.option("--font-color", default=None)
@click.option("--align", default=None)
@click.option("--date", "event_date", default="")
@click.option("--venue", default="")
@click.option("--org-by", default="")
def create_event(event_name, template_file, name_box, qr_box, font_family, font_size, font_color, align, event_date, venue, org_by):
    """Register an event and copy its template into the template store."""
    nx, ny, nw, nh = _parse_floats(name_box, 4, "--name-box")
    qx, qy, qs = _parse_floats(qr_box, 3, "--qr")
    layout = sanitize_event_layout(
        {
            "nameX": nx,
            "nameY": ny,
            "nameW": nw,
            "nameH": nh,
            "nameFontFamily": font_family,
            "nameFontSize": font_size,
            "nameFontColor": font_color,
            "nameAlign": align,
            "qrX": qx,
            "qrY": qy,
            "qrSize": qs,
        }
    )
    store = _template_store()
    reference = store.import_file(template_file)
    try:
        width, height = store.probe(reference)
    except CertificateError as exc:
        os.remove(store.resolve(reference))
        click.echo(str(exc), err=True)
        sys.exit(1)
    event = Event(
        name=event_name,
        date=event_date,
        venue=venue,
        organized_by=org_by,
        template_path=reference,
        **layout,
    )
    db.session.add(event)
    db.session.commit()
    current_app.logger.info(
        "[EVENT] created id=%s template=%s size=%sx%s", event.id, reference, width, height
    )
    click.echo(f"event={event.id} template={reference} width={width} height={height}")


@cli.command("list_events")
def list_events():
    """Print every event, newest first."""
    events = db.session.query(Event).order_by(Event.id.desc()).all()
    for event in events:
        issued = (
            db.session.query(GeneratedCertificate.id)
            .filter(GeneratedCertificate.event_id == event.id)
            .count()
        )
        click.echo(
            f"{event.id}\t{event.name}\t{event.date or '-'}\t{event.venue or '-'}\t"
            f"template={event.template_path}\tcertificates={issued}"
        )
    if not events:
        click.echo("No events", err=True)


@cli.command("probe_template")
@click.argument("reference")
def probe_template(reference: str):
    """Print the pixel size of a stored template."""
    try:
        width, height = _template_store().probe(reference)
    except CertificateError as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)
    click.echo(f"{width}x{height}")


@cli.command("gen_cert")
@click.option("--event", "event_id", required=True, type=int)
@click.option("--name", "participant_name", required=True)
@click.option("--email", required=True)
@click.option("--mobile", default="")
@click.option("--dept", default="")
@click.option("--year", default="")
@click.option("--enroll", default="")
def gen_cert(event_id, participant_name, email, mobile, dept, year, enroll):
    """Generate a certificate for one participant."""
    event = _load_event(event_id)
    if not event:
        sys.exit(1)
    ctx = build_context(current_app.config, db.session)
    try:
        submission = parse_submission(
            {
                "name": participant_name,
                "email": email,
                "mobile": mobile,
                "dept": dept,
                "year": year,
                "enroll": enroll,
            }
        )
        row = generate_certificate(ctx, event_config_from_model(event), submission)
    except MetadataPersistFailure as exc:
        click.echo(f"{exc} (file kept at {exc.file_path})", err=True)
        sys.exit(2)
    except CertificateError as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)
    click.echo(row.file_path)


@cli.command("gen_batch")
@click.option("--event", "event_id", required=True, type=int)
@click.option("--csv", "csv_path", required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--workers", type=int, default=None)
def gen_batch(event_id: int, csv_path: str, workers: int | None):
    """Generate certificates for every row of a CSV (name,email,...)."""
    event = _load_event(event_id)
    if not event:
        sys.exit(1)
    with open(csv_path, newline="", encoding="utf-8-sig") as handle:
        rows = [
            {(key or "").strip().lower(): value for key, value in row.items()}
            for row in csv.DictReader(handle)
        ]
    ctx = build_context(current_app.config, db.session)
    try:
        config = event_config_from_model(event)
    except CertificateError as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)
    summary = generate_batch(ctx, config, rows, workers=workers)
    for failure in summary.failures:
        click.echo(f"row={failure.index + 1} name={failure.name!r} error={failure.error}")
    click.echo(f"succeeded={summary.succeeded} failed={summary.failed}")


@cli.command("verify_cert")
@click.argument("url")
def verify_cert(url: str):
    """Look up the certificates behind a scanned verification URL."""
    try:
        event_id, name = parse_verification_payload(url)
    except ValueError as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)
    rows = find_for_verification(db.session, event_id, name)
    if not rows:
        click.echo(f"NOT FOUND event={event_id} name={name!r}")
        sys.exit(1)
    event = db.session.get(Event, event_id)
    for row in rows:
        click.echo(
            f"VALID event={event_id} ({event.name if event else '?'}) name={row.participant_name!r} "
            f"issued={row.created_at} path={row.file_path}"
        )


@cli.command("mark_delivery")
@click.option("--id", "certificate_id", required=True, type=int)
@click.option("--status", type=click.Choice(["sent", "failed"]), required=True)
@click.option("--error", default=None)
def mark_delivery(certificate_id: int, status: str, error: str | None):
    """Record the outcome of emailing a certificate."""
    try:
        row = record_delivery_result(db.session, certificate_id, status, error)
    except (LookupError, CertificateError) as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)
    click.echo(f"id={row.id} status={row.status}")


@cli.command("export_responses")
@click.option("--event", "event_id", required=True, type=int)
@click.option("--output", type=click.Path(dir_okay=False, writable=True), default=None)
def export_responses(event_id: int, output: str | None):
    """Write an event's generated certificates as CSV."""
    rows = (
        db.session.query(GeneratedCertificate)
        .filter(GeneratedCertificate.event_id == event_id)
        .order_by(GeneratedCertificate.id)
        .all()
    )
    handle = open(output, "w", newline="", encoding="utf-8") if output else sys.stdout
    try:
        writer = csv.writer(handle)
        writer.writerow(
            [
                "CertificateId",
                "EventId",
                "Name",
                "Email",
                "Mobile",
                "Department",
                "Year",
                "Enrollment",
                "FilePath",
                "Status",
                "Error",
                "CreatedAt",
            ]
        )
        for row in rows:
            writer.writerow(
                [
                    row.id,
                    row.event_id,
                    row.participant_name,
                    row.email,
                    row.mobile or "",
                    row.department or "",
                    row.year or "",
                    row.enrollment or "",
                    row.file_path,
                    row.status,
                    row.error or "",
                    row.created_at.isoformat() if row.created_at else "",
                ]
            )
    finally:
        if output:
            handle.close()


@cli.command("purge_orphan_certs")
@click.option("--dry-run", is_flag=True, help="Only list images that have no certificate row")
def purge_orphan_certs(dry_run: bool):
    """Delete certificate images left behind without a metadata row."""
    sink = FileArtifactSink(current_app.config.get("SITE_ROOT", "/srv"))
    if not os.path.isdir(sink.root):
        click.echo("Certificate directory missing", err=True)
        return
    if not dry_run and os.getenv("FLASK_ENV") == "production" and os.getenv("ALLOW_CERT_PURGE") != "1":
        click.echo("Refusing to delete in production without ALLOW_CERT_PURGE=1", err=True)
        sys.exit(1)

    known = {path for (path,) in db.session.query(GeneratedCertificate.file_path)}
    orphans: list[str] = []
    scanned = 0
    for dirpath, _dirs, files in os.walk(sink.root):
        for filename in sorted(files):
            if not filename.lower().endswith(".png"):
                continue
            scanned += 1
            full_path = os.path.join(dirpath, filename)
            if os.path.relpath(full_path, sink.site_root) not in known:
                orphans.append(full_path)

    deleted = errors = 0
    for full_path in orphans:
        click.echo(full_path)
        if dry_run:
            continue
        try:
            os.remove(full_path)
        except OSError:
            errors += 1
            current_app.logger.exception("[CERT-PURGE] failed to remove %s", full_path)
        else:
            deleted += 1
    summary = (
        f"scanned={scanned} orphaned={len(orphans)} deleted={deleted} "
        f"kept={scanned - len(orphans)} errors={errors}"
    )
    click.echo(summary)
    current_app.logger.info("[CERT-PURGE] %s", summary)


if __name__ == "__main__":
    cli()

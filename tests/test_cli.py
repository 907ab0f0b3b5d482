import csv
import io
import os

import pytest

from conftest import write_template
from eventcerts.app import db
from eventcerts.models import Event, GeneratedCertificate
from eventcerts.shared.codes import build_verification_payload
from manage import (
    create_event,
    export_responses,
    gen_batch,
    gen_cert,
    list_events,
    mark_delivery,
    probe_template,
    purge_orphan_certs,
    verify_cert,
)


@pytest.fixture
def runner(app):
    for command in (
        create_event,
        list_events,
        probe_template,
        gen_cert,
        gen_batch,
        verify_cert,
        mark_delivery,
        export_responses,
        purge_orphan_certs,
    ):
        app.cli.add_command(command)
    return app.test_cli_runner()


def test_create_event_imports_template(runner, tmp_path, site_root):
    upload = write_template(tmp_path / "upload.png", size=(1200, 850))
    res = runner.invoke(
        args=[
            "create_event",
            "--name", "Hackathon",
            "--template", str(upload),
            "--name-box", "0.25,0.45,0.5,0.1",
            "--qr", "0.85,0.8,0.08",
            "--font-size", "500",
            "--align", "left",
        ]
    )
    assert res.exit_code == 0, res.output
    assert "width=1200 height=850" in res.output
    event = db.session.query(Event).one()
    assert event.name_font_size == 200
    assert event.name_align == "left"
    assert (site_root / "templates" / event.template_path).is_file()

    res = runner.invoke(args=["probe_template", event.template_path])
    assert res.output.strip() == "1200x850"


def test_create_event_rejects_malformed_box(runner, tmp_path):
    upload = write_template(tmp_path / "upload.png")
    res = runner.invoke(
        args=["create_event", "--name", "x", "--template", str(upload), "--name-box", "0.1,0.2", "--qr", "0,0,0.1"]
    )
    assert res.exit_code != 0
    assert db.session.query(Event).count() == 0


def test_probe_missing_template(runner):
    res = runner.invoke(args=["probe_template", "nope.png"])
    assert res.exit_code == 1


def test_gen_cert_and_verify(runner, make_event, app, site_root):
    event = make_event()
    res = runner.invoke(
        args=["gen_cert", "--event", str(event.id), "--name", "Jane Doe", "--email", "jane@example.org"]
    )
    assert res.exit_code == 0, res.output
    rel_path = res.output.strip().splitlines()[-1]
    assert (site_root / rel_path).is_file()

    url = build_verification_payload(app.config["VERIFY_BASE_URL"], event.id, "Jane Doe")
    res = runner.invoke(args=["verify_cert", url])
    assert res.exit_code == 0
    assert "VALID" in res.output
    assert rel_path in res.output

    other = build_verification_payload(app.config["VERIFY_BASE_URL"], event.id, "Nobody")
    res = runner.invoke(args=["verify_cert", other])
    assert res.exit_code == 1
    assert "NOT FOUND" in res.output


def test_gen_cert_rejects_bad_email(runner, make_event):
    event = make_event()
    res = runner.invoke(
        args=["gen_cert", "--event", str(event.id), "--name", "Jane", "--email", "nope"]
    )
    assert res.exit_code == 1
    assert db.session.query(GeneratedCertificate).count() == 0


def test_gen_batch_from_csv(runner, make_event, tmp_path):
    event = make_event(size=(600, 400))
    sheet = tmp_path / "people.csv"
    sheet.write_text(
        "Name,Email,Dept\nAnn,ann@example.org,CSE\n,missing@example.org,CSE\nBob,bob@example.org,ME\n",
        encoding="utf-8",
    )
    res = runner.invoke(
        args=["gen_batch", "--event", str(event.id), "--csv", str(sheet), "--workers", "2"]
    )
    assert res.exit_code == 0, res.output
    assert "succeeded=2 failed=1" in res.output
    assert "row=2" in res.output
    departments = sorted(r.department for r in db.session.query(GeneratedCertificate))
    assert departments == ["CSE", "ME"]


def test_mark_delivery_and_export(runner, make_event, tmp_path):
    event = make_event()
    runner.invoke(
        args=["gen_cert", "--event", str(event.id), "--name", "Jane", "--email", "jane@example.org"]
    )
    row = db.session.query(GeneratedCertificate).one()

    res = runner.invoke(args=["mark_delivery", "--id", str(row.id), "--status", "failed", "--error", "bounced"])
    assert res.exit_code == 0
    assert "status=failed" in res.output
    res = runner.invoke(args=["mark_delivery", "--id", str(row.id), "--status", "sent"])
    assert res.exit_code == 1

    out = tmp_path / "export.csv"
    res = runner.invoke(args=["export_responses", "--event", str(event.id), "--output", str(out)])
    assert res.exit_code == 0
    records = list(csv.DictReader(io.StringIO(out.read_text(encoding="utf-8"))))
    assert len(records) == 1
    assert records[0]["Name"] == "Jane"
    assert records[0]["Status"] == "failed"
    assert records[0]["Error"] == "bounced"


def test_purge_orphan_certs_cli(runner, make_event, site_root):
    event = make_event()
    runner.invoke(
        args=["gen_cert", "--event", str(event.id), "--name", "Jane", "--email", "jane@example.org"]
    )
    kept = site_root / db.session.query(GeneratedCertificate).one().file_path
    orphan = site_root / "certificates" / str(event.id) / "orphan.png"
    orphan.write_bytes(b"x")

    res = runner.invoke(args=["purge_orphan_certs", "--dry-run"])
    assert "orphan.png" in res.output
    assert orphan.exists()
    res = runner.invoke(args=["purge_orphan_certs"])
    assert res.exit_code == 0
    assert "deleted=1 kept=1" in res.output
    assert not orphan.exists()
    assert kept.exists()
    assert os.listdir(kept.parent) == [kept.name]


def test_list_events_newest_first_with_counts(runner, make_event):
    older = make_event(name="Orientation", venue="Hall A")
    newer = make_event(name="Hackathon", template_path="hack.png")
    runner.invoke(
        args=["gen_cert", "--event", str(older.id), "--name", "Jane", "--email", "jane@example.org"]
    )

    res = runner.invoke(args=["list_events"])
    assert res.exit_code == 0
    lines = [line for line in res.output.splitlines() if "\t" in line]
    assert [line.split("\t")[0] for line in lines] == [str(newer.id), str(older.id)]
    assert "Hall A" in lines[1]
    assert lines[1].endswith("certificates=1")
    assert lines[0].endswith("certificates=0")

import threading
import time

import pytest

from eventcerts.app import db
from eventcerts.models import GeneratedCertificate
from eventcerts.shared import certificates
from eventcerts.shared.certificates import StoredArtifact, build_context, generate_batch
from eventcerts.shared.errors import CompositingFailure
from eventcerts.shared.submissions import ParticipantSubmission, event_config_from_model


def _rows(count):
    return [
        {"name": f"Participant {i}", "email": f"p{i}@example.org", "dept": "ECE"}
        for i in range(count)
    ]


def test_batch_isolates_invalid_rows(app, make_event, site_root):
    event = make_event(size=(600, 400))
    rows = _rows(10)
    rows[3]["name"] = "   "
    summary = generate_batch(
        build_context(app.config, db.session), event_config_from_model(event), rows, workers=3
    )

    assert summary.succeeded == 9
    assert summary.failed == 1
    assert summary.failures[0].index == 3
    assert "name" in summary.failures[0].error.lower()
    assert db.session.query(GeneratedCertificate).count() == 9
    paths = [row.file_path for row in summary.artifacts]
    assert len(set(paths)) == 9
    assert all((site_root / path).is_file() for path in paths)
    assert [row.participant_name for row in summary.artifacts] == [
        f"Participant {i}" for i in range(10) if i != 3
    ]


def test_batch_accepts_submission_objects(app, make_event):
    event = make_event(size=(600, 400))
    rows = [ParticipantSubmission(name="Ann", email="ann@example.org")]
    summary = generate_batch(
        build_context(app.config, db.session), event_config_from_model(event), rows
    )
    assert summary.succeeded == 1
    assert summary.artifacts[0].email == "ann@example.org"


def test_batch_isolates_generation_failures(app, make_event, monkeypatch):
    event = make_event(size=(600, 400))
    real = certificates.store_certificate

    def sometimes_broken(ctx, config, submission, deadline=None):
        if submission.name.endswith("2"):
            raise CompositingFailure("bad layer")
        return real(ctx, config, submission, deadline)

    monkeypatch.setattr(certificates, "store_certificate", sometimes_broken)
    summary = generate_batch(
        build_context(app.config, db.session), event_config_from_model(event), _rows(5)
    )
    assert summary.succeeded == 4
    assert [(f.index, f.error) for f in summary.failures] == [(2, "bad layer")]


def test_batch_respects_worker_bound(app, make_event, monkeypatch):
    event = make_event(size=(600, 400))
    lock = threading.Lock()
    active = {"now": 0, "peak": 0}

    def counting(ctx, config, submission, deadline=None):
        with lock:
            active["now"] += 1
            active["peak"] = max(active["peak"], active["now"])
        try:
            time.sleep(0.05)
            path = ctx.artifacts.write(config.event_id, b"png")
            return StoredArtifact(config.event_id, submission, path, 10)
        finally:
            with lock:
                active["now"] -= 1

    monkeypatch.setattr(certificates, "store_certificate", counting)
    summary = generate_batch(
        build_context(app.config, db.session), event_config_from_model(event), _rows(12), workers=2
    )
    assert summary.succeeded == 12
    assert active["peak"] <= 2


@pytest.mark.slow
def test_batch_abandons_items_past_deadline(app, make_event, monkeypatch):
    event = make_event(size=(600, 400))
    release = threading.Event()

    def hanging(ctx, config, submission, deadline=None):
        if submission.name == "Participant 1":
            release.wait(10)
        path = ctx.artifacts.write(config.event_id, b"png")
        return StoredArtifact(config.event_id, submission, path, 10)

    monkeypatch.setattr(certificates, "store_certificate", hanging)
    started = time.monotonic()
    try:
        summary = generate_batch(
            build_context(app.config, db.session),
            event_config_from_model(event),
            _rows(3),
            workers=2,
            deadline_seconds=0.2,
        )
    finally:
        release.set()
    assert time.monotonic() - started < 5
    assert summary.succeeded == 2
    assert summary.failures[0].index == 1
    assert "deadline" in summary.failures[0].error

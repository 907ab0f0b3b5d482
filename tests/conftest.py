import os
import pathlib
import sys

import pytest
from PIL import Image

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from eventcerts.app import create_app, db
from eventcerts.models import Event


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "slow" in item.keywords or "quarantine" in item.keywords:
            continue
        item.add_marker("full")
        if "no_smoke" in item.keywords:
            continue
        item.add_marker("smoke")


def write_template(path, size=(1000, 700), color="white", mode="RGB"):
    path = pathlib.Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new(mode, size, color).save(path, format="PNG")
    return path


@pytest.fixture
def site_root(tmp_path):
    return tmp_path / "site"


@pytest.fixture
def app(site_root):
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    os.environ["SITE_ROOT"] = str(site_root)
    os.environ["VERIFY_BASE_URL"] = "https://certs.example.org"
    os.environ["CERT_DEADLINE_SECONDS"] = "30"
    application = create_app()
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_event(app, site_root):
    def _make(size=(1000, 700), **overrides):
        filename = overrides.pop("template_path", "tmpl.png")
        write_template(site_root / "templates" / filename, size=size)
        values = {
            "name": "Tech Fest",
            "template_path": filename,
            "name_box_x": 0.2,
            "name_box_y": 0.4,
            "name_box_w": 0.3,
            "name_box_h": 0.1,
            "name_font_family": "Poppins",
            "name_font_size": 48,
            "name_font_color": "#0ea5e9",
            "name_align": "center",
            "qr_x": 0.8,
            "qr_y": 0.75,
            "qr_size": 0.1,
        }
        values.update(overrides)
        event = Event(**values)
        db.session.add(event)
        db.session.commit()
        return event

    return _make

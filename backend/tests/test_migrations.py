import re
from pathlib import Path

from harmonia import db
import harmonia.models  # noqa: F401

VERSIONS_DIR = Path(__file__).resolve().parent.parent / 'migrations' / 'versions'


def _revisions():
    return sorted(VERSIONS_DIR.glob('*.py'))


def test_single_base_revision():
    revisions = _revisions()
    assert len(revisions) == 1
    assert "down_revision = None" in revisions[0].read_text()


def test_schema_revision_creates_every_model_table():
    source = _revisions()[0].read_text()
    created = set(re.findall(r"op\.create_table\(\s*'(\w+)'", source))
    dropped = set(re.findall(r"op\.drop_table\('(\w+)'\)", source))
    assert created == set(db.metadata.tables)
    assert dropped == created

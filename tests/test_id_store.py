import json

from safeoutputs.id_store import (
    TemporaryIdDocument,
    load_temporary_id_document,
    persist_temporary_id_document,
)
from safeoutputs.temporary_id import ResolvedReference


def test_document_persistence_round_trip(tmp_path):
    path = tmp_path / "nested" / "ids.json"
    doc = TemporaryIdDocument.from_map({"aw_abc123": ResolvedReference("octo/app", 7)})
    persist_temporary_id_document(path, doc)

    loaded = load_temporary_id_document(path)
    assert loaded.entries == {"aw_abc123": {"repo": "octo/app", "number": 7}}
    assert loaded.signature
    assert loaded.to_map() == {"aw_abc123": ResolvedReference("octo/app", 7)}

    raw = json.loads(path.read_text())
    assert raw["signature"] == loaded.signature
    assert not (tmp_path / "nested" / "ids.json.tmp").exists()


def test_signature_mismatch_returns_empty(tmp_path, capsys):
    path = tmp_path / "ids.json"
    path.write_text(json.dumps({
        "version": 1,
        "generated_at": "2024-01-01T00:00:00Z",
        "signature": "deadbeef",
        "entries": {"aw_abc123": {"repo": "o/r", "number": 1}},
    }))
    assert load_temporary_id_document(path).entries == {}
    assert "signature mismatch" in capsys.readouterr().out


def test_plain_map_is_accepted(tmp_path):
    path = tmp_path / "ids.json"
    path.write_text(json.dumps({"aw_abc123": {"repo": "o/r", "number": 4}, "aw_legacy1": 9}))
    id_map = load_temporary_id_document(path).to_map("o/default")
    assert id_map == {
        "aw_abc123": ResolvedReference("o/r", 4),
        "aw_legacy1": ResolvedReference("o/default", 9),
    }


def test_missing_or_corrupt_file(tmp_path):
    assert load_temporary_id_document(tmp_path / "absent.json").entries == {}
    corrupt = tmp_path / "corrupt.json"
    corrupt.write_text("{not json")
    assert load_temporary_id_document(corrupt).entries == {}

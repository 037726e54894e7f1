"""Tests for source loading."""

from athena import load_document, load_sources


def test_text_file_becomes_local_document(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("Office hours:\n  Mondays 2pm.\n", encoding="utf-8")

    doc = load_document(str(path))

    assert doc.file_name == "notes.txt"
    assert doc.file_identity == "local-file://notes.txt"
    assert "Mondays 2pm." in doc.raw_text


def test_missing_and_empty_files_are_skipped(tmp_path):
    empty = tmp_path / "empty.txt"
    empty.write_text("   \n", encoding="utf-8")

    assert load_document(str(tmp_path / "missing.txt")) is None
    assert load_document(str(empty)) is None


def test_load_sources_reads_at_most_max_documents(tmp_path):
    paths = []
    for i in range(4):
        path = tmp_path / f"week{i}.txt"
        path.write_text(f"Week {i} reading list.", encoding="utf-8")
        paths.append(str(path))

    docs = load_sources(paths + [str(tmp_path / "missing.txt")], max_documents=3)

    assert [d.file_name for d in docs] == ["week0.txt", "week1.txt", "week2.txt"]

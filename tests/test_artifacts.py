from __future__ import annotations

from pathlib import Path

from reflect_engine.runs.artifacts import ArtifactStore, artifact_filename, is_artifact_name


def test_save_creates_directory_and_returns_public_path(tmp_path: Path) -> None:
    root = tmp_path / "public" / "images"
    store = ArtifactStore(root)
    root.rmdir()

    artifact = store.save(0, b"png-bytes")

    assert artifact.path.startswith("/images/generated_0_")
    assert artifact.path.endswith(".png")
    assert artifact.file_path.read_bytes() == b"png-bytes"
    assert store.exists(artifact.path)
    assert not any(name.name.endswith(".part") for name in root.iterdir())


def test_same_iteration_saves_never_collide(tmp_path: Path) -> None:
    store = ArtifactStore(tmp_path)
    paths = {store.save(3, b"x").path for _ in range(25)}
    assert len(paths) == 25
    assert len(store.list_paths()) == 25


def test_purge_all_only_removes_artifacts(tmp_path: Path) -> None:
    store = ArtifactStore(tmp_path)
    store.save(0, b"a")
    store.save(1, b"b")
    keep = tmp_path / "notes.txt"
    keep.write_text("keep me", encoding="utf-8")

    assert store.purge_all() == 2
    assert store.list_paths() == []
    assert keep.exists()


def test_exists_rejects_foreign_and_traversal_paths(tmp_path: Path) -> None:
    store = ArtifactStore(tmp_path / "images")
    (tmp_path / "secret.png").write_bytes(b"s")
    assert not store.exists("/images/../secret.png")
    assert not store.exists("/other/generated_0_1.png")
    assert not store.exists("/images/generated_9_1.png")
    assert store.resolve("/images/") is None


def test_artifact_name_pattern() -> None:
    assert artifact_filename(4, 1700000000000) == "generated_4_1700000000000.png"
    assert is_artifact_name("generated_4_1700000000000.png")
    assert not is_artifact_name("generated_4.png")
    assert not is_artifact_name(".generated_4_1.png.part")

import pytest

from spebit.core.exceptions import StorageError
from spebit.core.storage import LocalObjectStorage, ObjectStorage, build_screenshot_key


def test_screenshot_key_layout():
    assert build_screenshot_key("user-1", "proof.png", 1700000000000) == "user-1/1700000000000_proof.png"


def test_screenshot_key_drops_directories_from_the_filename():
    key = build_screenshot_key("user-1", "../../etc/passwd", 1)
    assert key == "user-1/1_passwd"
    assert build_screenshot_key("user-1", "", 1) == "user-1/1_screenshot"


def test_upload_writes_the_object_once(tmp_path):
    storage = LocalObjectStorage(str(tmp_path), "/storage/")

    storage.upload("user-1/1_proof.png", b"png-bytes", "image/png")

    assert (tmp_path / "user-1" / "1_proof.png").read_bytes() == b"png-bytes"
    assert storage.public_url("user-1/1_proof.png") == "/storage/user-1/1_proof.png"
    with pytest.raises(StorageError):
        storage.upload("user-1/1_proof.png", b"other", "image/png")


def test_upload_refuses_keys_outside_the_root(tmp_path):
    storage = LocalObjectStorage(str(tmp_path / "root"))

    with pytest.raises(StorageError):
        storage.upload("../escape.png", b"x")


def test_delete_removes_the_object(tmp_path):
    storage = LocalObjectStorage(str(tmp_path))
    storage.upload("user-1/1_proof.png", b"png-bytes", "image/png")

    storage.delete("user-1/1_proof.png")
    storage.delete("user-1/1_proof.png")

    assert not (tmp_path / "user-1" / "1_proof.png").exists()


def test_object_storage_is_abstract():
    with pytest.raises(TypeError):
        ObjectStorage()

import pytest

from app.facreq.storage import LocalStorage, S3Storage, StorageError, storage_from_config


def test_local_roundtrip_and_move(tmp_path):
    st = LocalStorage(root=tmp_path)
    st.put_bytes("staging/a/b.pdf", b"data")
    assert st.exists("staging/a/b.pdf")
    assert st.get_bytes("staging/a/b.pdf") == b"data"

    st.move("staging/a/b.pdf", "vault/x/b.pdf")
    assert not st.exists("staging/a/b.pdf")
    assert st.get_bytes("vault/x/b.pdf") == b"data"


def test_local_move_missing_source(tmp_path):
    with pytest.raises(StorageError):
        LocalStorage(root=tmp_path).move("nope.pdf", "vault/nope.pdf")


def test_local_delete_is_quiet_for_missing(tmp_path):
    LocalStorage(root=tmp_path).delete("never/existed.pdf")


def test_local_rejects_parent_traversal(tmp_path):
    with pytest.raises(StorageError):
        LocalStorage(root=tmp_path).put_bytes("../escape.txt", b"x")


def test_storage_from_config(tmp_path):
    st = storage_from_config({"STORAGE_BACKEND": "local", "STORAGE_ROOT": str(tmp_path)})
    assert isinstance(st, LocalStorage)
    s3 = storage_from_config({"STORAGE_BACKEND": "s3", "S3_BUCKET": "reqs", "STORAGE_TIMEOUT_SECONDS": 5})
    assert isinstance(s3, S3Storage)
    assert s3.timeout_seconds == 5.0
    with pytest.raises(StorageError):
        storage_from_config({"STORAGE_BACKEND": "ftp"})

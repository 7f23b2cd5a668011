from tests.constants import URLs

from ephemeral_share.config import settings
from ephemeral_share.models.file_record import FileRecord, FileStatus
from ephemeral_share.storage.exceptions import StorageUnavailableError


def _register_and_login(client, username="carol", password="password123"):
    client.post(URLs.REGISTER, json={"username": username, "password": password})
    response = client.post(URLs.LOGIN, json={"username": username, "password": password})
    token = response.json()["data"]["token"]
    return {"Authorization": f"Bearer {token}"}


def _upload(client, content=b"0123456789", filename="hello.txt", url=URLs.PUBLIC_UPLOAD, headers=None, **form):
    return client.post(
        url,
        files={"file": (filename, content, "text/plain")},
        data={key: str(value) for key, value in form.items()},
        headers=headers or {},
    )


def test_anonymous_upload_returns_uuid(client, db):
    response = _upload(client)

    assert response.status_code == 201
    file_id = response.json()["uuid"]

    record = db.get(FileRecord, file_id)
    assert record.owner_id is None
    assert record.is_public is True
    assert record.max_downloads == settings.ANONYMOUS_DEFAULT_MAX_DOWNLOADS
    assert record.expires_at is not None


def test_download_round_trip(client):
    content = bytes(range(256)) * 16
    file_id = _upload(client, content=content, filename="report final.pdf").json()["uuid"]

    response = client.get(URLs.PUBLIC_DOWNLOAD.format(file_id))

    assert response.status_code == 200
    assert response.content == content
    assert response.headers["content-type"] == "application/octet-stream"
    assert response.headers["content-length"] == str(len(content))
    disposition = response.headers["content-disposition"]
    assert disposition.startswith("attachment;")
    assert "filename*=UTF-8''report%20final.pdf" in disposition


def test_single_download_link(client, db, storage):
    """10-byte anonymous upload with maxDownloads=1: one download, then 404."""
    file_id = _upload(client, content=b"0123456789", maxDownloads=1).json()["uuid"]

    first = client.get(URLs.PUBLIC_DOWNLOAD.format(file_id))
    second = client.get(URLs.PUBLIC_DOWNLOAD.format(file_id))

    assert first.status_code == 200
    assert first.content == b"0123456789"
    assert second.status_code == 404
    assert second.json()["error"] == "NotFound"

    # Reclaimed eagerly once the last download was sent
    record = db.get(FileRecord, file_id, populate_existing=True)
    assert record.status == FileStatus.DELETED
    assert not storage.blob_exists(file_id)


def test_expired_link_is_404(client, db):
    from datetime import timedelta

    from ephemeral_share.utils.datetime import utcnow

    file_id = _upload(client, expiresInSeconds=60).json()["uuid"]
    record = db.get(FileRecord, file_id)
    record.expires_at = utcnow() - timedelta(seconds=1)
    db.commit()

    response = client.get(URLs.PUBLIC_DOWNLOAD.format(file_id))

    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "error": "Expired",
        "message": "File has expired",
    }


def test_unknown_id_is_404(client):
    response = client.get(URLs.PUBLIC_DOWNLOAD.format("00000000-0000-4000-8000-000000000000"))

    assert response.status_code == 404
    assert response.json()["error"] == "NotFound"


def test_file_info_does_not_consume(client):
    file_id = _upload(client, content=b"abc", filename="notes.txt", maxDownloads=1).json()["uuid"]

    response = client.get(URLs.PUBLIC_INFO.format(file_id))

    assert response.status_code == 200
    info = response.json()
    assert info["uuid"] == file_id
    assert info["filename"] == "notes.txt"
    assert info["size"] == 3
    assert info["downloadsRemaining"] == 1
    assert info["public"] is True

    assert client.get(URLs.PUBLIC_DOWNLOAD.format(file_id)).status_code == 200


def test_invalid_limits_are_rejected(client):
    response = _upload(client, maxDownloads=0)

    assert response.status_code == 400
    assert response.json()["error"] == "InvalidInput"


def test_non_numeric_limit_is_rejected(client):
    response = _upload(client, expiresInSeconds="soon")

    assert response.status_code == 400
    assert response.json()["error"] == "InvalidInput"


def test_empty_file_is_rejected(client):
    response = _upload(client, content=b"")

    assert response.status_code == 400
    assert response.json()["error"] == "InvalidInput"


def test_file_above_storage_limit_is_413(client, storage):
    response = _upload(client, content=b"x" * (storage.max_size_bytes + 1))

    assert response.status_code == 413
    assert response.json()["error"] == "PayloadTooLarge"


def test_oversized_request_is_rejected_before_reading_body(client, monkeypatch):
    import ephemeral_share.api.files as files_api

    async def endpoint_must_not_run(*args, **kwargs):
        raise AssertionError("upload endpoint reached")

    monkeypatch.setattr(files_api, "_handle_upload", endpoint_must_not_run)
    monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE_MB", 1)
    monkeypatch.setattr(settings, "MULTIPART_OVERHEAD_BYTES", 0)

    response = _upload(client, content=b"x" * (1024 * 1024 + 1))

    assert response.status_code == 413
    assert response.json()["error"] == "PayloadTooLarge"


def test_upload_without_content_length_is_411(client, storage, monkeypatch):
    import ephemeral_share.api.files as files_api

    async def endpoint_must_not_run(*args, **kwargs):
        raise AssertionError("upload endpoint reached")

    monkeypatch.setattr(files_api, "_handle_upload", endpoint_must_not_run)
    monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE_MB", 1)

    boundary = "chunkedboundary"

    def chunked_body():
        yield (
            f"--{boundary}\r\n"
            'Content-Disposition: form-data; name="file"; filename="big.bin"\r\n'
            "Content-Type: application/octet-stream\r\n\r\n"
        ).encode()
        for _ in range(5):
            yield b"x" * (1024 * 1024)
        yield f"\r\n--{boundary}--\r\n".encode()

    # A generator body is sent with chunked transfer encoding
    response = client.post(
        URLs.PUBLIC_UPLOAD,
        content=chunked_body(),
        headers={"Content-Type": f"multipart/form-data; boundary={boundary}"},
    )

    assert response.status_code == 411
    assert response.json()["error"] == "InvalidInput"
    assert [p for p in storage.base_path.rglob("*") if p.is_file()] == []


def test_share_link_routes_round_trip(client):
    response = _upload(client, content=b"shared bytes", url=URLs.SHARE_UPLOAD, maxDownloads=1)

    assert response.status_code == 201
    file_id = response.json()["uuid"]

    first = client.get(URLs.SHARE_DOWNLOAD.format(file_id))
    second = client.get(URLs.SHARE_DOWNLOAD.format(file_id))

    assert first.status_code == 200
    assert first.content == b"shared bytes"
    assert second.status_code == 404


def test_share_link_download_counts_against_public_upload(client):
    file_id = _upload(client, content=b"abc", maxDownloads=2).json()["uuid"]

    assert client.get(URLs.SHARE_DOWNLOAD.format(file_id)).status_code == 200
    assert client.get(URLs.PUBLIC_DOWNLOAD.format(file_id)).status_code == 200
    assert client.get(URLs.SHARE_DOWNLOAD.format(file_id)).status_code == 404


def test_storage_outage_is_503_with_retry_after(client, storage, monkeypatch):
    file_id = _upload(client).json()["uuid"]

    async def unavailable_open_blob(key):
        raise StorageUnavailableError("disk offline")

    monkeypatch.setattr(settings, "STORAGE_RETRY_BASE_DELAY_SECONDS", 0)
    monkeypatch.setattr(storage, "open_blob", unavailable_open_blob)

    response = client.get(URLs.PUBLIC_DOWNLOAD.format(file_id))

    assert response.status_code == 503
    assert response.json()["error"] == "Unavailable"
    assert response.headers["retry-after"] == str(settings.RETRY_AFTER_SECONDS)


def test_client_errors_have_no_retry_after(client):
    response = client.get(URLs.PUBLIC_DOWNLOAD.format("00000000-0000-4000-8000-000000000000"))

    assert response.status_code == 404
    assert "retry-after" not in response.headers


def test_invalid_bearer_token_is_rejected_on_public_upload(client):
    response = _upload(client, headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


def test_authenticated_public_upload_is_owned(client, db):
    headers = _register_and_login(client)

    file_id = _upload(client, headers=headers).json()["uuid"]

    record = db.get(FileRecord, file_id)
    assert record.owner is not None
    assert record.owner.username == "carol"


def test_user_upload_requires_token(client):
    response = _upload(client, url=URLs.USER_UPLOAD)

    assert response.status_code in (401, 403)


def test_user_upload_without_limits(client, db):
    headers = _register_and_login(client)

    file_id = _upload(client, url=URLs.USER_UPLOAD, headers=headers).json()["uuid"]

    record = db.get(FileRecord, file_id)
    assert record.expires_at is None
    assert record.max_downloads is None


def test_private_file_access(client):
    owner_headers = _register_and_login(client, "carol")
    other_headers = _register_and_login(client, "dave")
    file_id = _upload(
        client, content=b"private", url=URLs.USER_UPLOAD, headers=owner_headers, public="false"
    ).json()["uuid"]

    anonymous = client.get(URLs.PUBLIC_DOWNLOAD.format(file_id))
    other = client.get(URLs.USER_DOWNLOAD.format(file_id), headers=other_headers)
    owner = client.get(URLs.USER_DOWNLOAD.format(file_id), headers=owner_headers)

    assert anonymous.status_code == 403
    assert anonymous.json()["message"] == "Private file - access denied"
    assert other.status_code == 403
    assert owner.status_code == 200
    assert owner.content == b"private"


def test_list_user_files(client):
    headers = _register_and_login(client)
    file_id = _upload(
        client, filename="mine.txt", url=URLs.USER_UPLOAD, headers=headers, maxDownloads=5
    ).json()["uuid"]
    _upload(client, filename="anonymous.txt")

    response = client.get(URLs.USER_FILES, headers=headers)

    assert response.status_code == 200
    [entry] = response.json()
    assert entry["uuid"] == file_id
    assert entry["filename"] == "mine.txt"
    assert entry["size"] == 10
    assert entry["downloadCount"] == 0
    assert entry["maxDownloads"] == 5
    assert entry["ownerUsername"] == "carol"
    assert entry["public"] is True
    assert entry["status"] == "active"
    assert "uploadDate" in entry
    assert entry["expiryDate"] is None


def test_delete_user_file(client, db, storage):
    headers = _register_and_login(client)
    file_id = _upload(client, url=URLs.USER_UPLOAD, headers=headers).json()["uuid"]

    response = client.delete(URLs.USER_FILE.format(file_id), headers=headers)

    assert response.status_code == 204
    assert client.get(URLs.PUBLIC_DOWNLOAD.format(file_id)).status_code == 404
    assert not storage.blob_exists(file_id)
    assert client.get(URLs.USER_FILES, headers=headers).json() == []

    # Already gone
    assert client.delete(URLs.USER_FILE.format(file_id), headers=headers).status_code == 404


def test_delete_someone_elses_file_is_404(client, storage):
    owner_headers = _register_and_login(client, "carol")
    other_headers = _register_and_login(client, "dave")
    file_id = _upload(client, url=URLs.USER_UPLOAD, headers=owner_headers).json()["uuid"]

    response = client.delete(URLs.USER_FILE.format(file_id), headers=other_headers)

    assert response.status_code == 404
    assert storage.blob_exists(file_id)

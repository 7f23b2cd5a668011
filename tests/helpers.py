from collections.abc import AsyncIterator

from ephemeral_share.services.files import build_upload_request, upload_file


async def stream_bytes(data: bytes, chunk_size: int = 1024) -> AsyncIterator[bytes]:
    for i in range(0, len(data), chunk_size):
        yield data[i:i + chunk_size]


async def upload_bytes(db, storage, data: bytes, filename: str = "hello.txt", owner_id=None, **limits):
    request = build_upload_request(filename=filename, owner_id=owner_id, **limits)
    return await upload_file(db, storage, stream_bytes(data), request)

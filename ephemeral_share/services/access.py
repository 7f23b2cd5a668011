"""
Access control for file records.

Policy: holding the id is enough to download a file unless the owner marked
it private (``is_public = False``); private files are downloadable by their
owner only. Listing and deletion always require ownership.
"""
import enum

from ephemeral_share.errors import Forbidden, NotFound
from ephemeral_share.models.file_record import FileRecord


class Capability(str, enum.Enum):
    ANONYMOUS = "anonymous"
    OWNER = "authenticated-owner"
    OTHER = "authenticated-other"


def classify_requester(record: FileRecord, requester_id: int | None) -> Capability:
    if requester_id is None:
        return Capability.ANONYMOUS
    if record.owner_id is not None and record.owner_id == requester_id:
        return Capability.OWNER
    return Capability.OTHER


def authorize_download(record: FileRecord, requester_id: int | None) -> Capability:
    """
    Check that the requester may download (or inspect) ``record``.

    Raises:
        Forbidden: Private file and the requester is not its owner
    """
    capability = classify_requester(record, requester_id)
    if not record.is_public and capability is not Capability.OWNER:
        raise Forbidden()
    return capability


def authorize_owner(record: FileRecord, requester_id: int | None) -> None:
    """
    Check that the requester owns ``record``.

    Raises:
        NotFound: The requester is not the owner (existence stays hidden)
    """
    if classify_requester(record, requester_id) is not Capability.OWNER:
        raise NotFound()

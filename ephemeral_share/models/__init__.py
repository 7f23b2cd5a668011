from ephemeral_share.models.file_record import FileRecord, FileStatus
from ephemeral_share.models.user import User

__all__ = ["FileRecord", "FileStatus", "User"]

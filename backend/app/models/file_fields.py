from sqlalchemy import Column, Integer, String, Text

from app.storage.base import FileLocator, UploadResult


class FileFieldsMixin:
    """
    Optional attached file, embedded in every record table.

    `file_path` + `file_sha` are kept for the lifetime of the row so a file
    stored in the remote repository can still be deleted after later edits.
    """

    file_name = Column(String(512), nullable=True)
    # Inline uploads keep their data URI here; there is no separate payload column.
    file_url = Column(Text, nullable=True)
    file_path = Column(String(1024), nullable=True)
    file_size = Column(Integer, nullable=True)
    file_type = Column(String(255), nullable=True)
    file_sha = Column(String(64), nullable=True)
    file_backend = Column(String(20), nullable=True)

    def apply_upload(self, result: UploadResult) -> None:
        self.file_name = result.file_name
        self.file_url = result.file_url
        self.file_path = result.file_path
        self.file_size = result.file_size
        self.file_type = result.file_type
        self.file_sha = result.github_sha
        self.file_backend = result.backend

    def file_locator(self) -> FileLocator:
        return FileLocator(file_url=self.file_url, file_path=self.file_path, sha=self.file_sha)

    def has_file(self) -> bool:
        return bool(self.file_url)

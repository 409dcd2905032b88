"""Upload, download and archive helpers built on the transfer client."""

from .archive_extractor import ArchiveExtractor, extract_archive, normalize_entry_path
from .archive_stager import staged_zip, write_file_zip, write_folder_zip
from .downloader import Downloader
from .uploader import Uploader

__all__ = [
    "ArchiveExtractor",
    "Downloader",
    "Uploader",
    "extract_archive",
    "normalize_entry_path",
    "staged_zip",
    "write_file_zip",
    "write_folder_zip",
]

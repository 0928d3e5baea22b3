"""
Backup Service - verify and list SQL dump files

Backups are plain (.sql) or gzip-compressed (.sql.gz) pg_dump files in
BACKUP_DIR. Verification never touches the database.
"""
import gzip
import hashlib
import os
import re
import zlib
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional, Tuple
import logging

from rentalshop.core.config import settings
from rentalshop.core.errors import NotFoundError, ValidationError, ErrorCode

logger = logging.getLogger(__name__)

BACKUP_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
BACKUP_SUFFIXES = (".sql", ".sql.gz")
CREATE_TABLE_PATTERN = re.compile(r'CREATE TABLE "?(\w+)"?')
STATEMENT_END_PATTERN = re.compile(r";\s*$", re.MULTILINE)
MAX_RESTORABLE_ERRORS = 2
CHUNK_SIZE = 1024 * 1024


@dataclass
class BackupVerification:
    backup_id: str
    filename: str = ""
    status: str = "failed"
    file_size: int = 0
    file_exists: bool = False
    can_restore: bool = False
    table_count: int = 0
    record_count: int = 0
    checksum: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def md5_checksum(path: str) -> str:
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def read_backup(path: str) -> str:
    if path.endswith(".gz"):
        with gzip.open(path, "rt", encoding="utf-8", errors="replace") as f:
            return f.read()
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return f.read()


def analyze_content(content: str) -> Dict[str, Any]:
    """Count tables and inserts and collect content problems"""
    errors = []
    warnings = []
    table_count = len(CREATE_TABLE_PATTERN.findall(content))
    record_count = content.count("INSERT INTO")

    if "ERROR:" in content:
        errors.append("Backup contains error messages")
    if "WARNING:" in content:
        warnings.append("Backup contains warning messages")
    if table_count == 0:
        errors.append("No tables found in backup")
    if record_count == 0:
        warnings.append("No data records found in backup")
    if len(STATEMENT_END_PATTERN.findall(content)) < table_count:
        warnings.append("Backup may contain incomplete statements")

    return {"table_count": table_count, "record_count": record_count,
            "errors": errors, "warnings": warnings}


def check_restorable(path: str) -> Tuple[bool, Optional[str]]:
    """gzip files must decompress completely; plain files must be readable text"""
    try:
        if path.endswith(".gz"):
            with gzip.open(path, "rb") as f:
                while f.read(CHUNK_SIZE):
                    pass
        else:
            with open(path, "r", encoding="utf-8") as f:
                for _, _line in zip(range(10), f):
                    pass
        return True, None
    except (OSError, EOFError, zlib.error, UnicodeDecodeError) as e:
        return False, str(e)


def decide_status(verification: BackupVerification) -> None:
    if not verification.errors:
        verification.status = "verified"
    elif len(verification.errors) <= MAX_RESTORABLE_ERRORS and verification.can_restore:
        verification.status = "verified"
        verification.warnings.append("Backup has minor issues but is restorable")
    else:
        verification.status = "failed"


class BackupService:
    """Backup verification and listing"""

    def __init__(self, backup_dir: Optional[str] = None):
        self.backup_dir = backup_dir or settings.BACKUP_DIR

    def _locate(self, backup_id: str) -> Tuple[str, str]:
        if not BACKUP_ID_PATTERN.match(backup_id or "") or ".." in backup_id:
            raise ValidationError(f"Invalid backup id '{backup_id}'")

        for suffix in BACKUP_SUFFIXES:
            filename = f"{backup_id}{suffix}"
            path = os.path.join(self.backup_dir, filename)
            if os.path.isfile(path):
                return path, filename

        raise NotFoundError("Backup file not found", code=ErrorCode.BACKUP_NOT_FOUND,
                            details={"backup_id": backup_id})

    def verify_backup(self, backup_id: str) -> BackupVerification:
        path, filename = self._locate(backup_id)
        verification = BackupVerification(backup_id=backup_id, filename=filename, file_exists=True)
        logger.info(f"Verifying backup {filename}")

        try:
            verification.file_size = os.path.getsize(path)
            verification.checksum = md5_checksum(path)
        except OSError as e:
            verification.errors.append(f"Failed to get file info: {e}")

        try:
            analysis = analyze_content(read_backup(path))
            verification.table_count = analysis["table_count"]
            verification.record_count = analysis["record_count"]
            verification.errors.extend(analysis["errors"])
            verification.warnings.extend(analysis["warnings"])
        except (OSError, EOFError, zlib.error) as e:
            verification.errors.append(f"Failed to analyze backup content: {e}")

        can_restore, error = check_restorable(path)
        verification.can_restore = can_restore
        if not can_restore:
            verification.errors.append(f"Restore test failed: {error}")

        decide_status(verification)
        logger.info(f"Backup {filename} verification: {verification.status}")
        return verification

    def list_backups(self) -> List[Dict[str, Any]]:
        if not os.path.isdir(self.backup_dir):
            return []

        backups = []
        for filename in os.listdir(self.backup_dir):
            suffix = next((s for s in reversed(BACKUP_SUFFIXES) if filename.endswith(s)), None)
            if suffix is None:
                continue
            path = os.path.join(self.backup_dir, filename)
            stat = os.stat(path)
            backups.append({
                "backup_id": filename[:-len(suffix)],
                "filename": filename,
                "compressed": suffix == ".sql.gz",
                "file_size": stat.st_size,
                "modified_at": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
            })

        return sorted(backups, key=lambda b: b["modified_at"], reverse=True)

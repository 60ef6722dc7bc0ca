# FILE: webforge/services/archive_service.py
import io
import zipfile
from typing import Dict

# Fixed entry timestamp so the same FileSet always produces the same bytes
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
ZIP_FILE_MODE = 0o644 << 16


def build_archive(files: Dict[str, str]) -> bytes:
    """Zip a FileSet: one entry per path, sorted, content as UTF-8 bytes."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as z:
        for path in sorted(files):
            info = zipfile.ZipInfo(path, date_time=ZIP_EPOCH)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = ZIP_FILE_MODE
            z.writestr(info, files[path].encode("utf-8"))
    return buf.getvalue()


def read_archive(data: bytes) -> Dict[str, bytes]:
    with zipfile.ZipFile(io.BytesIO(data)) as z:
        return {name: z.read(name) for name in z.namelist()}


def archive_filename(site_name: str, job_id: str) -> str:
    safe_name = (site_name or "").strip().replace(" ", "_")
    safe_name = "".join(ch for ch in safe_name if (ch.isascii() and ch.isalnum()) or ch in "_-")
    return f"{safe_name or 'website-' + job_id[:8]}.zip"

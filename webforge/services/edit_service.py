# FILE: webforge/services/edit_service.py
# Follow-up edits on a completed job (one provider call, overlay merge, no billing)

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from webforge.core.config import EDIT_TIMEOUT_SECONDS
from webforge.core.errors import JobStateError, NoFilesParsed, PersistenceError, ValidationError
from webforge.models.generation_job import STATUS_COMPLETED, GenerationJob
from webforge.protocol.file_blocks import FileSet, normalize_path, parse_file_blocks
from webforge.schemas.generate import EditRequest
from webforge.services.archive_service import build_archive
from webforge.services.generation_service import get_gateway, get_job
from webforge.services.prompt_service import EDIT_SYSTEM_PROMPT, build_edit_prompt
from webforge.services.provider_service import ProviderGateway

logger = logging.getLogger("webforge.edit")

MAX_SCOPE_FILES = 8

STYLE_KEYWORDS = ["color", "colour", "style", "css", "font", "background", "border", "margin", "padding", "size"]
SCRIPT_KEYWORDS = ["script", "javascript", "function", "click", "button", "form", "slider", "carousel", "animation"]
LAYOUT_KEYWORDS = ["header", "footer", "nav", "menu", "logo"]
I18N_KEYWORDS = ["translation", "translate", "language", "i18n"]
PAGE_KEYWORDS = {
    "about": ["about"],
    "contact": ["contact"],
    "services": ["service"],
    "gallery": ["gallery", "photo"],
    "blog": ["blog", "news"],
    "faq": ["faq", "question"],
    "terms": ["terms"],
    "privacy": ["privacy"],
}
ENTRY_FILES = ("index.html", "index.php", "src/app.jsx")


@dataclass
class EditResult:
    files: FileSet
    changed_files: List[str] = field(default_factory=list)
    message: str = ""


def suggest_edit_scope(files: FileSet, change_request: str) -> List[str]:
    """Keyword guess at the files an edit request is about (entry page first)."""
    request = (change_request or "").lower()
    paths = list(files.keys())
    selected: List[str] = []

    def add(matches):
        for p in matches:
            if p not in selected:
                selected.append(p)

    add(p for p in paths if p.lower() in ENTRY_FILES)

    if any(kw in request for kw in STYLE_KEYWORDS):
        add(p for p in paths if p.lower().endswith(".css") or "style" in p.lower())
    if any(kw in request for kw in SCRIPT_KEYWORDS):
        add(p for p in paths if p.lower().endswith((".js", ".jsx")) or "script" in p.lower())
    for page, keywords in PAGE_KEYWORDS.items():
        if any(kw in request for kw in keywords):
            add(p for p in paths if page in p.lower())
    if any(kw in request for kw in I18N_KEYWORDS):
        add(p for p in paths if "i18n" in p.lower() or "translation" in p.lower())
    if any(kw in request for kw in LAYOUT_KEYWORDS):
        add(p for p in paths if any(part in p.lower() for part in ("header", "footer", "nav")))

    if len(selected) < 2:
        add(p for p in paths if p.lower() in ("styles.css", "css/style.css", "css/styles.css"))

    return selected[:MAX_SCOPE_FILES]


def _normalize_file_set(files: Dict[str, str]) -> FileSet:
    out: FileSet = {}
    for raw, content in files.items():
        path = normalize_path(raw)
        if not path:
            raise ValidationError(f"Invalid file path: {raw!r}")
        out[path] = content if isinstance(content, str) else str(content)
    return out


def _normalize_scope(hints: Optional[List[str]]) -> List[str]:
    scope: List[str] = []
    for raw in hints or []:
        path = normalize_path(raw)
        if not path:
            raise ValidationError(f"Invalid scope path: {raw!r}")
        if path not in scope:
            scope.append(path)
    return scope


async def edit_job(
        db: AsyncSession,
        user_id: str,
        req: EditRequest,
        gateway: Optional[ProviderGateway] = None,
        timeout: Optional[float] = None,
) -> EditResult:
    """
    Apply a change request to a completed job's files.

    The provider returns only the files it changed; they are overlaid on the
    caller's current FileSet. Files and archive are replaced in one commit
    after a successful parse. Any error before that commit leaves the stored
    job untouched.
    """
    gateway = gateway or get_gateway()

    job = await get_job(db, req.job_id, user_id)
    if job.status != STATUS_COMPLETED:
        raise JobStateError(f"Only completed jobs can be edited (job is {job.status})")
    model_tier = job.model_tier

    current = _normalize_file_set(req.current_files)
    scope = _normalize_scope(req.scope_hints)
    focus = scope or suggest_edit_scope(current, req.change_request)

    logger.info("Edit for job %s: %r (focus: %s)", job.id, req.change_request[:120], ", ".join(focus))

    completion = await gateway.complete(
        EDIT_SYSTEM_PROMPT,
        build_edit_prompt(current, req.change_request, focus, scoped=bool(scope)),
        model_tier,
        timeout=timeout or EDIT_TIMEOUT_SECONDS,
    )
    returned = parse_file_blocks(completion.text)

    if scope:
        dropped = sorted(set(returned) - set(scope))
        if dropped:
            logger.info("Edit for job %s: discarding out-of-scope files %s", job.id, ", ".join(dropped))
        returned = {p: c for p, c in returned.items() if p in scope}
        if not returned:
            raise NoFilesParsed("The edit did not return any file inside the requested scope")

    merged = {**current, **returned}
    changed = sorted(p for p, c in returned.items() if current.get(p) != c)

    try:
        res = await db.execute(
            update(GenerationJob)
            .where(GenerationJob.id == job.id, GenerationJob.status == STATUS_COMPLETED)
            .values(files=merged, archive=build_archive(merged))
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            await db.rollback()
            raise JobStateError("Job is no longer editable")
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("Failed to save edit for job %s", job.id)
        raise PersistenceError("Failed to save changes") from e

    logger.info("Edit for job %s saved: %d changed of %d files", job.id, len(changed), len(merged))
    if changed:
        message = f"Updated {len(changed)} file(s): {', '.join(changed)}"
    else:
        message = "No changes were needed"
    return EditResult(files=merged, changed_files=changed, message=message)

# FILE: webforge/services/prompt_service.py

from typing import Iterable, List, Optional

from webforge.protocol.file_blocks import FileSet, format_file_set

LANGUAGE_NAMES = {
    "en": "English",
    "de": "German",
    "fr": "French",
    "es": "Spanish",
    "it": "Italian",
    "pl": "Polish",
    "uk": "Ukrainian",
    "nl": "Dutch",
    "pt": "Portuguese",
}

OUTPUT_FORMAT_RULES = """
OUTPUT FORMAT (MANDATORY):
<!-- FILE: path/to/file.ext -->
<complete file content here>

- Start every file with its own <!-- FILE: --> marker line
- Do NOT wrap files in markdown code blocks
- Do NOT write explanations before, between or after the files
- Every file must be complete; no placeholders like "rest of code here"
""".strip()

_STRUCTURE = {
    "html": """
Create a multi-page static website (HTML5, CSS3, vanilla JavaScript).

REQUIRED FILES:
- index.html, about.html, services.html, contact.html
- privacy.html, terms.html, 404.html
- styles.css (complete design system, responsive, at least 3000 characters)
- script.js (navigation, mobile menu, form validation)
- robots.txt, sitemap.xml

Every HTML page links styles.css and script.js and shares the same header and footer.
""",
    "php": """
Create a multi-page PHP website with shared includes.

REQUIRED FILES:
- includes/config.php (site constants), includes/header.php, includes/footer.php
- index.php, about.php, services.php, contact.php
- form-handler.php (validates POST data, redirects to thank-you.php)
- thank-you.php, privacy.php, terms.php, cookie-policy.php
- css/style.css, js/script.js

Every top-level page starts with include 'includes/header.php' and ends with include 'includes/footer.php'.
""",
    "react": """
Create a React single-page application built with Vite.

REQUIRED FILES:
- package.json (react, react-dom, vite, @vitejs/plugin-react)
- index.html (mounts #root and loads /src/main.jsx)
- src/main.jsx, src/App.jsx
- src/index.css and one component file per page section under src/components/
""",
}

EDIT_SYSTEM_PROMPT = f"""
You are an expert website editor. You modify existing website files based on user requests.

CRITICAL RULES:
1. Make ONLY the specific change requested, nothing else
2. Keep all other content, styles, images and structure exactly as they are
3. Return ONLY the files you actually modified, not all files
4. Do not change layout or images unless asked to

{OUTPUT_FORMAT_RULES}
""".strip()


def language_name(code: str) -> str:
    c = (code or "").strip().lower()
    return LANGUAGE_NAMES.get(c, code or "English")


def build_generation_system_prompt(output_kind: str) -> str:
    structure = _STRUCTURE.get(output_kind)
    if structure is None:
        raise ValueError(f"Unknown output kind: {output_kind}")
    return (
        "You are a senior web developer who generates complete, production-ready websites.\n\n"
        f"{structure.strip()}\n\n{OUTPUT_FORMAT_RULES}"
    )


def build_generation_user_prompt(
    prompt: str,
    language: str,
    layout_hint: Optional[str] = None,
    site_name: Optional[str] = None,
) -> str:
    lang = language_name(language)
    parts = [
        f"TARGET WEBSITE LANGUAGE: {lang}",
        f"All visible text must be in {lang}. Do not mix languages.",
    ]
    if site_name:
        parts.append(f'EXACT SITE NAME: "{site_name.strip()}" (use it verbatim in the header, footer and titles)')
    if layout_hint:
        parts.append(f"LAYOUT / STYLE: {layout_hint.strip()}")
    parts.append("")
    parts.append("WEBSITE REQUEST:")
    parts.append((prompt or "").strip())
    return "\n".join(parts)


def _bullets(items: Iterable[str]) -> str:
    lines = [f"- {i}" for i in items]
    return "\n".join(lines) if lines else "- none"


def build_repair_prompt(files: FileSet, errors: List[str], warnings: List[str]) -> str:
    return f"""The generated website has the following issues that MUST be fixed:

ERRORS (must fix):
{_bullets(errors)}

WARNINGS (should fix):
{_bullets(warnings)}

CURRENT FILES:
{format_file_set(files)}

Return the COMPLETE corrected file set in the same <!-- FILE: --> format.
Include ALL required files, not just the ones with errors."""


def build_edit_prompt(
    files: FileSet,
    change_request: str,
    focus_paths: List[str],
    scoped: bool = False,
) -> str:
    if scoped:
        focus = f"ONLY these files may be changed:\n{_bullets(focus_paths)}"
    else:
        focus = f"Most likely relevant files:\n{_bullets(focus_paths)}"
    return f"""WEBSITE FILES ({len(files)} files):
{format_file_set(files)}

USER REQUEST: {(change_request or '').strip()}

{focus}

INSTRUCTIONS:
- Change only what is asked
- Return ONLY the files you need to modify, with their complete content
- Do NOT return files that don't need changes"""

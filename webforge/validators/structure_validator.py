# FILE: webforge/validators/structure_validator.py
import posixpath
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

FileSet = Dict[str, str]
ContentCheck = Callable[[FileSet], Tuple[List[str], List[str]]]

FENCE = "```"
TEXT_EXTENSIONS = (".html", ".htm", ".css", ".js", ".jsx", ".ts", ".tsx", ".php", ".json", ".xml", ".txt", ".md")

_PHP_INCLUDE_RE = r"(?:include|require)(?:_once)?\s*\(?\s*['\"](?:\./)?{path}['\"]"


@dataclass
class ValidationReport:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {"errors": list(self.errors), "warnings": list(self.warnings), "attempts": self.attempts}


@dataclass
class StructurePolicy:
    name: str
    required_paths: List[str] = field(default_factory=list)
    min_lengths: Dict[str, int] = field(default_factory=dict)
    checks: List[ContentCheck] = field(default_factory=list)


def _log(bucket: List[str], message: str) -> None:
    if message not in bucket:
        bucket.append(message)


# ─────────────────────────────────────────────
# Content checks
# ─────────────────────────────────────────────
def check_code_fences(files: FileSet) -> Tuple[List[str], List[str]]:
    errors: List[str] = []
    for path, content in files.items():
        if path.lower().endswith(TEXT_EXTENSIONS) and FENCE in content:
            _log(errors, f"{path} contains markdown code fences")
    return errors, []


def check_html_links(files: FileSet) -> Tuple[List[str], List[str]]:
    warnings: List[str] = []
    for path, content in files.items():
        if not path.lower().endswith(".html"):
            continue
        for asset in ("styles.css", "script.js"):
            if asset not in content:
                _log(warnings, f"{path} does not link to {asset}")
    return [], warnings


def check_php_includes(files: FileSet) -> Tuple[List[str], List[str]]:
    errors: List[str] = []
    for path, content in files.items():
        if "/" in path or not path.endswith(".php") or path == "form-handler.php":
            continue
        for inc in ("includes/header.php", "includes/footer.php"):
            if not re.search(_PHP_INCLUDE_RE.format(path=re.escape(inc)), content):
                _log(errors, f"{path} does not include {inc}")
    return errors, []


def check_react_entry(files: FileSet) -> Tuple[List[str], List[str]]:
    warnings: List[str] = []
    index = files.get("index.html")
    if index is not None and "src/main.jsx" not in index:
        _log(warnings, "index.html does not load /src/main.jsx")
    main = files.get("src/main.jsx")
    if main is not None and "App" not in main:
        _log(warnings, "src/main.jsx does not render App")
    return [], warnings


# ─────────────────────────────────────────────
# Policies
# ─────────────────────────────────────────────
HTML_POLICY = StructurePolicy(
    name="html",
    required_paths=[
        "index.html", "styles.css", "script.js", "about.html", "services.html",
        "contact.html", "privacy.html", "terms.html", "404.html", "robots.txt", "sitemap.xml",
    ],
    min_lengths={"styles.css": 3000},
    checks=[check_code_fences, check_html_links],
)

PHP_POLICY = StructurePolicy(
    name="php",
    required_paths=[
        "index.php", "about.php", "services.php", "contact.php", "form-handler.php",
        "thank-you.php", "privacy.php", "terms.php", "cookie-policy.php",
        "includes/header.php", "includes/footer.php", "includes/config.php",
        "css/style.css", "js/script.js",
    ],
    checks=[check_code_fences, check_php_includes],
)

REACT_POLICY = StructurePolicy(
    name="react",
    required_paths=["package.json", "index.html", "src/main.jsx", "src/App.jsx"],
    checks=[check_code_fences, check_react_entry],
)

POLICIES: Dict[str, StructurePolicy] = {p.name: p for p in (HTML_POLICY, PHP_POLICY, REACT_POLICY)}


def policy_for(output_kind: str) -> StructurePolicy:
    try:
        return POLICIES[output_kind]
    except KeyError:
        raise ValueError(f"No structure policy for output kind '{output_kind}'")


def validate_file_set(files: FileSet, policy: StructurePolicy, attempts: int = 1) -> ValidationReport:
    """Missing files and broken cross references are errors; thin content is a warning."""
    report = ValidationReport(attempts=attempts)
    present = {posixpath.normpath(p) for p in files}

    for required in policy.required_paths:
        if required not in present:
            _log(report.errors, f"Missing required file: {required}")

    for path, minimum in policy.min_lengths.items():
        content: Optional[str] = files.get(path)
        if content is not None and len(content) < minimum:
            _log(report.warnings, f"{path} is too short ({len(content)} chars), expected at least {minimum}")

    for check in policy.checks:
        errors, warnings = check(files)
        for e in errors:
            _log(report.errors, e)
        for w in warnings:
            _log(report.warnings, w)

    return report

# FILE: webforge/repair/repair_loop.py
"""
Generate, validate, re-prompt.

The loop makes at most `max_attempts` provider calls in total. A response
that parses to nothing still counts as an attempt. Running out of attempts
with validation errors left is not a failure: the caller gets the last
files together with the report that still lists those errors.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from webforge.core.config import REPAIR_MAX_ATTEMPTS
from webforge.core.errors import NoFilesParsed
from webforge.protocol.file_blocks import FileSet, parse_file_blocks
from webforge.services.prompt_service import build_repair_prompt
from webforge.services.provider_service import ProviderGateway, UsageTotals
from webforge.validators.structure_validator import StructurePolicy, ValidationReport, validate_file_set

logger = logging.getLogger("webforge.repair")


@dataclass
class RepairResult:
    files: FileSet
    report: ValidationReport
    usage: UsageTotals = field(default_factory=UsageTotals)


async def generate_with_repair(
        gateway: ProviderGateway,
        system_prompt: str,
        user_prompt: str,
        model_tier: str,
        policy: StructurePolicy,
        max_attempts: Optional[int] = None,
        min_length: Optional[int] = None,
        label: str = "",
) -> RepairResult:
    """
    Provider errors propagate untouched. NoFilesParsed is raised only when
    no attempt produced a single file.
    """
    ceiling = max(1, max_attempts or REPAIR_MAX_ATTEMPTS)
    usage = UsageTotals()
    files: Optional[FileSet] = None
    report: Optional[ValidationReport] = None
    last_parse_error: Optional[NoFilesParsed] = None

    for attempt in range(1, ceiling + 1):
        if files is None:
            prompt = user_prompt
        else:
            prompt = build_repair_prompt(files, report.errors, report.warnings)

        logger.info("%s attempt %d/%d (%s)", label or "generation", attempt, ceiling,
                    "initial" if files is None else "repair")
        completion = await gateway.complete(system_prompt, prompt, model_tier)
        usage.add(completion)

        try:
            parsed = parse_file_blocks(completion.text, min_length=min_length)
        except NoFilesParsed as e:
            last_parse_error = e
            logger.warning("%s attempt %d: no files parsed from %d chars", label, attempt, len(completion.text))
            if report is not None:
                report.attempts = attempt
            continue

        # A repair answer may leave out files it did not touch
        files = parsed if files is None else {**files, **parsed}
        report = validate_file_set(files, policy, attempts=attempt)
        logger.info(
            "%s attempt %d: %d files, %d errors, %d warnings",
            label, attempt, len(files), len(report.errors), len(report.warnings),
        )
        if report.ok:
            break

    if files is None:
        raise last_parse_error or NoFilesParsed()

    if report.errors:
        logger.warning("%s finished with %d unresolved validation errors", label, len(report.errors))
    return RepairResult(files=files, report=report, usage=usage)

from dataclasses import dataclass
from typing import Dict, Iterable, List, TYPE_CHECKING

if TYPE_CHECKING:
    from entmig_core.validation import SchemaProblem

DOCUMENT_INVALID = "SCHEMA_DOCUMENT_INVALID"
RELATION_INVALID = "SCHEMA_RELATION_INVALID"
SNAPSHOT_INVALID = "SNAPSHOT_INVALID"


@dataclass(frozen=True)
class Issue:
    severity: str
    code: str
    message: str
    path: str = "/"
    hint: str = ""


def has_errors(issues: Iterable[Issue]) -> bool:
    return any(issue.severity == "error" for issue in issues)


def from_problems(problems: Iterable["SchemaProblem"]) -> List[Issue]:
    issues: List[Issue] = []
    for problem in problems:
        parts = [part for part in (problem.entity, problem.edge, problem.field) if part]
        issues.append(
            Issue(
                severity="error",
                code=RELATION_INVALID,
                message=problem.detail or "invalid schema configuration",
                path="/" + "/".join(parts),
                hint=problem.suggestion,
            )
        )
    return issues


def to_lines(issues: List[Issue]) -> List[str]:
    lines = []
    for issue in issues:
        lines.append(
            f"[{issue.severity.upper()}] {issue.code} {issue.path}: {issue.message}"
        )
        if issue.hint:
            lines.append(f"    Hint: {issue.hint}")
    return lines


def as_dicts(issues: Iterable[Issue]) -> List[Dict[str, str]]:
    return [
        {
            "severity": issue.severity,
            "code": issue.code,
            "message": issue.message,
            "path": issue.path,
            "hint": issue.hint,
        }
        for issue in issues
    ]

from typing import List, Optional, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from entmig_core.validation import SchemaProblem


class EntmigError(Exception):
    """Base class for errors raised by the migration engine."""


class SchemaValidationError(EntmigError):
    """Raised with every problem found while validating an entity set."""

    def __init__(self, problems: Sequence["SchemaProblem"]) -> None:
        self.problems: List["SchemaProblem"] = list(problems)
        super().__init__(self._render())

    def _render(self) -> str:
        if not self.problems:
            return "schema validation failed"
        if len(self.problems) == 1:
            problem = self.problems[0]
            if not problem.suggestion:
                return problem.describe()
            return f"{problem.describe()}\nHint: {problem.suggestion}"
        lines = ["schema validation failed:"]
        for problem in self.problems:
            lines.append(f"  - {problem.describe()}")
            if problem.suggestion:
                lines.append(f"    Hint: {problem.suggestion}")
        return "\n".join(lines)


class InvariantViolation(EntmigError):
    """The schema contradicts itself in a way the engine must not guess around."""


class EnumConflictError(InvariantViolation):
    def __init__(self, enum_name: str, existing: Sequence[str], conflicting: Sequence[str], location: str = "") -> None:
        self.enum_name = enum_name
        self.existing = list(existing)
        self.conflicting = list(conflicting)
        self.location = location
        where = f" (at {location})" if location else ""
        super().__init__(
            f"enum {enum_name} is bound to conflicting value sets{where}: "
            f"{self.existing} vs {self.conflicting}"
        )


class SnapshotError(EntmigError):
    def __init__(self, path: str, reason: str, cause: Optional[BaseException] = None) -> None:
        self.path = path
        self.reason = reason
        self.cause = cause
        super().__init__(f"Unreadable schema snapshot {path}: {reason}")


class ConfigError(EntmigError):
    pass

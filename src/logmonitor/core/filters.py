"""Include/exclude line filters."""

import re
from collections.abc import Iterable
from dataclasses import dataclass

from logmonitor.core.errors import PatternError
from logmonitor.core.models import FilterGroup


def compile_pattern(pattern: str, kind: str) -> re.Pattern[str]:
    """Compile a single regular expression.

    Args:
        pattern: Regular expression source.
        kind: Where the pattern comes from ("include", "exclude" or "value"),
            reported in the error.

    Returns:
        The compiled pattern.

    Raises:
        PatternError: If the pattern does not compile.
    """
    try:
        return re.compile(pattern)
    except re.error as e:
        raise PatternError(pattern, kind, str(e)) from e


@dataclass(frozen=True)
class _CompiledGroup:
    includes: tuple[re.Pattern[str], ...]
    excludes: tuple[re.Pattern[str], ...]

    def accepts(self, line: str) -> bool:
        if self.includes and not any(r.search(line) for r in self.includes):
            return False
        return not any(r.search(line) for r in self.excludes)


class FilterSet:
    """Compiled set of filter groups.

    A line is accepted when there are no groups, or when at least one group
    accepts it. Immutable after construction and safe to share.
    """

    def __init__(self, groups: Iterable[_CompiledGroup] = ()) -> None:
        self._groups = tuple(groups)

    @classmethod
    def compile(cls, groups: Iterable[FilterGroup]) -> "FilterSet":
        """Compile filter groups, dropping groups with no patterns at all.

        Args:
            groups: Filter groups in declaration order.

        Returns:
            A FilterSet ready for matching.

        Raises:
            PatternError: On the first pattern that fails to compile.
        """
        compiled: list[_CompiledGroup] = []
        for group in groups:
            includes = tuple(compile_pattern(p, "include") for p in group.include)
            excludes = tuple(compile_pattern(p, "exclude") for p in group.exclude)
            if includes or excludes:
                compiled.append(_CompiledGroup(includes, excludes))
        return cls(compiled)

    def __len__(self) -> int:
        return len(self._groups)

    def accepts(self, line: str) -> bool:
        """Return True if the line passes the filters."""
        if not self._groups:
            return True
        return any(group.accepts(line) for group in self._groups)

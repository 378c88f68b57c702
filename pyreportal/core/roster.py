from dataclasses import dataclass
from typing import Iterable, List, Optional

from pyreportal.core.models import Person


@dataclass(frozen=True)
class RosterFilter:
    """`group=None` and `staff_only=False` means everybody."""
    group: Optional[str] = None
    staff_only: bool = False

    @property
    def is_empty(self) -> bool:
        return self.group is None and not self.staff_only

    def matches(self, person: Person) -> bool:
        if self.staff_only:
            return person.type == "staff"
        if self.group is not None:
            # Group filters only apply to students
            return person.type == "student" and person.group == self.group
        return True


def apply_roster_filter(people: Iterable[Person], roster_filter: Optional[RosterFilter] = None) -> List[Person]:
    roster_filter = roster_filter or RosterFilter()
    filtered = [p for p in people if roster_filter.matches(p)]
    return sorted(filtered, key=lambda p: (p.sort_name, p.type, p.id or 0))


def available_groups(people: Iterable[Person]) -> List[str]:
    groups = {p.group for p in people if p.type == "student" and p.group}
    return sorted(groups, key=str.lower)

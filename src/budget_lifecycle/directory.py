"""
Event and membership directories

The engine does not own events, departments or members. It consults two
narrow collaborator contracts:

- EventDirectory: does the event exist, and who leads a department
- MembershipDirectory: what role a user holds in an event, and which
  member records are active

InMemoryDirectory implements both and is what the CLI and tests use; a
deployment plugs in its own directory service behind the same protocols.
"""

from collections.abc import Iterable
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, Field


class Role(str, Enum):
    """Event roles relevant to budgets"""

    HOOC = "HoOC"  # organizing-committee lead, the reviewer
    HOD = "HoD"  # department lead
    MEMBER = "Member"


class MemberStatus(str, Enum):
    ACTIVE = "active"
    DEACTIVE = "deactive"


class Department(BaseModel):
    """A department inside an event, with its designated lead"""

    department_id: str
    event_id: str
    name: str = ""
    leader_id: str | None = None  # user id of the HoD


class Member(BaseModel):
    """
    One user's membership in one event

    A member record is what items get assigned to; ``member_id`` is distinct
    from the user's account id.
    """

    member_id: str
    user_id: str
    event_id: str
    role: Role = Role.MEMBER
    department_id: str | None = None
    full_name: str = ""
    email: str = ""
    status: MemberStatus = MemberStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE


class EventDirectory(Protocol):
    """Lookup contract for events and their departments"""

    def exists(self, event_id: str) -> bool:
        ...

    def department_in_event(self, event_id: str, department_id: str) -> Department | None:
        ...


class MembershipDirectory(Protocol):
    """Lookup contract for event memberships"""

    def membership_of(self, event_id: str, user_id: str) -> Member | None:
        """Active membership of a user in an event, if any"""
        ...

    def resolve_member(
        self, member_id: str, event_id: str, department_id: str
    ) -> Member | None:
        """Active member of the given event and department, if any"""
        ...

    def lookup_members(self, member_ids: Iterable[str]) -> dict[str, Member]:
        """Batch lookup used to render assignee identities"""
        ...


class DirectorySnapshot(BaseModel):
    """Serializable contents of an InMemoryDirectory"""

    events: list[str] = Field(default_factory=list)
    departments: list[Department] = Field(default_factory=list)
    members: list[Member] = Field(default_factory=list)


class InMemoryDirectory:
    """Dictionary-backed EventDirectory and MembershipDirectory"""

    def __init__(self) -> None:
        self.events: set[str] = set()
        self.departments: dict[tuple[str, str], Department] = {}
        self.members: dict[str, Member] = {}

    @classmethod
    def from_snapshot(cls, data: dict[str, Any] | DirectorySnapshot) -> "InMemoryDirectory":
        """Build a directory from a snapshot (e.g. a JSON file loaded by the CLI)"""
        snapshot = (
            data if isinstance(data, DirectorySnapshot) else DirectorySnapshot.model_validate(data)
        )
        directory = cls()
        for event_id in snapshot.events:
            directory.add_event(event_id)
        for department in snapshot.departments:
            directory.add_department(department)
        for member in snapshot.members:
            directory.add_member(member)
        return directory

    def snapshot(self) -> DirectorySnapshot:
        return DirectorySnapshot(
            events=sorted(self.events),
            departments=list(self.departments.values()),
            members=list(self.members.values()),
        )

    # Mutation

    def add_event(self, event_id: str) -> None:
        self.events.add(event_id)

    def add_department(self, department: Department) -> Department:
        self.events.add(department.event_id)
        self.departments[(department.event_id, department.department_id)] = department
        return department

    def add_member(self, member: Member) -> Member:
        self.members[member.member_id] = member
        return member

    def deactivate(self, member_id: str) -> None:
        member = self.members[member_id]
        self.members[member_id] = member.model_copy(update={"status": MemberStatus.DEACTIVE})

    # EventDirectory

    def exists(self, event_id: str) -> bool:
        return event_id in self.events

    def department_in_event(self, event_id: str, department_id: str) -> Department | None:
        return self.departments.get((event_id, department_id))

    # MembershipDirectory

    def membership_of(self, event_id: str, user_id: str) -> Member | None:
        for member in self.members.values():
            if member.event_id == event_id and member.user_id == user_id and member.is_active:
                return member
        return None

    def resolve_member(
        self, member_id: str, event_id: str, department_id: str
    ) -> Member | None:
        member = self.members.get(member_id)
        if member is None or not member.is_active:
            return None
        if member.event_id != event_id or member.department_id != department_id:
            return None
        return member

    def lookup_members(self, member_ids: Iterable[str]) -> dict[str, Member]:
        return {
            member_id: self.members[member_id]
            for member_id in set(member_ids)
            if member_id in self.members
        }

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNSPECIFIED = "unspecified"

    @classmethod
    def parse(cls, raw: Any) -> "Gender":
        if isinstance(raw, cls):
            return raw
        s = str(raw or "").strip().lower()
        if s in ("m", "male"):
            return cls.MALE
        if s in ("f", "female"):
            return cls.FEMALE
        if s == "other":
            return cls.OTHER
        return cls.UNSPECIFIED


class MemberStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DECEASED = "deceased"
    ARCHIVED = "archived"

    @classmethod
    def parse(cls, raw: Any) -> "MemberStatus":
        if isinstance(raw, cls):
            return raw
        s = str(raw or "").strip().lower()
        for status in cls:
            if status.value == s:
                return status
        return cls.ACTIVE


class FamilyRole(str, Enum):
    MEMBER = "member"
    CONTRIBUTOR = "contributor"
    MODERATOR = "moderator"
    ADMIN = "admin"
    HEAD = "head"

    @classmethod
    def parse(cls, raw: Any) -> "FamilyRole":
        if isinstance(raw, cls):
            return raw
        s = str(raw or "").strip().lower()
        for role in cls:
            if role.value == s:
                return role
        return cls.MEMBER


class Visibility(str, Enum):
    PUBLIC = "public"
    FAMILY = "family"
    SUB_FAMILY = "sub_family"

    @classmethod
    def parse(cls, raw: Any) -> "Visibility":
        if isinstance(raw, cls):
            return raw
        s = str(raw or "").strip().lower().replace("-", "_")
        if s == "subfamily":
            s = "sub_family"
        for v in cls:
            if v.value == s:
                return v
        # Unknown visibility: most restrictive shared-membership tier.
        return cls.FAMILY


# Free-form personal-info keys, in the spellings seen in stored JSON.
_PERSONAL_INFO_KEYS = {
    "bio": "bio",
    "birthDate": "birth_date",
    "birth_date": "birth_date",
    "birthPlace": "birth_place",
    "birth_place": "birth_place",
    "occupation": "occupation",
    "phone": "phone",
    "email": "email",
}


@dataclass(frozen=True)
class PersonalInfo:
    bio: str | None = None
    birth_date: str | None = None
    birth_place: str | None = None
    occupation: str | None = None
    phone: str | None = None
    email: str | None = None
    social_links: dict[str, str] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, raw: Any) -> "PersonalInfo":
        """Build from the stored JSON bag.

        Known keys are lifted into typed fields; everything else lands in
        ``extra``. Non-mapping input yields an empty record.
        """

        if not isinstance(raw, Mapping):
            return cls()

        known: dict[str, str] = {}
        extra: dict[str, Any] = {}
        social: dict[str, str] = {}
        for key, value in raw.items():
            if key in ("socialLinks", "social_links"):
                if isinstance(value, Mapping):
                    social = {str(k): str(v) for k, v in value.items() if v}
                continue
            target = _PERSONAL_INFO_KEYS.get(key)
            if target is None:
                extra[str(key)] = value
                continue
            if value is None:
                continue
            s = str(value).strip()
            if s:
                known[target] = s

        return cls(social_links=social, extra=extra, **known)

    @property
    def birth_year(self) -> int | None:
        if not self.birth_date:
            return None
        head = self.birth_date.strip()[:4]
        return int(head) if head.isdigit() else None


@dataclass(frozen=True)
class Member:
    id: str
    name: str
    gender: Gender = Gender.UNSPECIFIED
    status: MemberStatus = MemberStatus.ACTIVE
    personal_info: PersonalInfo = field(default_factory=PersonalInfo)
    parent_ids: tuple[str, ...] = ()
    child_ids: tuple[str, ...] = ()
    spouse_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class Membership:
    family_id: str
    member_id: str
    role: FamilyRole = FamilyRole.MEMBER
    is_active: bool = True


@dataclass(frozen=True)
class FamilyGroup:
    id: str
    name: str
    parent_family_id: str | None = None
    visibility: Visibility = Visibility.FAMILY
    memberships: tuple[Membership, ...] = ()

    def active_member_ids(self) -> list[str]:
        return [m.member_id for m in self.memberships if m.is_active]

    def role_of(self, member_id: str) -> FamilyRole | None:
        for m in self.memberships:
            if m.member_id == member_id and m.is_active:
                return m.role
        return None

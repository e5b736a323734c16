from enum import Enum


class StoryRole(str, Enum):
    OWNER = "owner"
    MEMBER = "member"

# SQLModel definitions - imported here to ensure metadata is populated for create_all.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .organization import Organization, JoinRequest  # noqa: F401
from .user import User  # noqa: F401
from .user_org import UserOrg  # noqa: F401
from .task import Task  # noqa: F401
from .assignments import TaskUserAssignment  # noqa: F401

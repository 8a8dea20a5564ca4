# SQLModel definitions, imported here so the metadata is populated for Alembic and init_db.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .user import User  # noqa: F401
from .project import Project, Section  # noqa: F401
from .task import Task  # noqa: F401
from .project_member import ProjectMember  # noqa: F401
from .assignments import Assignment  # noqa: F401
from .activity import Activity  # noqa: F401

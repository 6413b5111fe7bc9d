"""Pydantic schemas for request/response validation."""

from .common import *  # noqa: F403
from .events import *  # noqa: F403
from .health import *  # noqa: F403
from .join_request import *  # noqa: F403
from .match import *  # noqa: F403
from .pricing import *  # noqa: F403
from .slot import *  # noqa: F403

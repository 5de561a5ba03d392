"""Model package exports."""

from .job_type import JobType  # noqa: F401
from .category import Category  # noqa: F401
from .tag import Tag  # noqa: F401
from .staff import Staff  # noqa: F401
from .diary import Diary  # noqa: F401
from .diary_tag import DiaryTag  # noqa: F401
from .user_diary_status import UserDiaryStatus  # noqa: F401
from .action_log import ActionLog  # noqa: F401
from .point_log import PointLog  # noqa: F401

__all__ = [
	'JobType',
	'Category',
	'Tag',
	'Staff',
	'Diary',
	'DiaryTag',
	'UserDiaryStatus',
	'ActionLog',
	'PointLog',
]

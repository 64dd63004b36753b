from .due_date import generate_due_date
from .query import SortMode, StatusFilter, query_tasks, shuffle_key

__all__ = ["SortMode", "StatusFilter", "generate_due_date", "query_tasks", "shuffle_key"]

from .task import Settings, Tag, Task

__all__ = ["Settings", "Tag", "Task"]

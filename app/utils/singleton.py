from typing import Any, ClassVar


class Singleton(type):
    """Metaclass returning one shared instance per class."""

    _instances: ClassVar[dict[type, Any]] = {}

    def __call__(cls, *args, **kwargs):
        if cls not in cls._instances:
            cls._instances[cls] = super().__call__(*args, **kwargs)
        return cls._instances[cls]

    def clear(cls) -> None:
        """Forget the shared instance so the next call builds a fresh one."""
        cls._instances.pop(cls, None)

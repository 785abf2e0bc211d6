from .config import initialize_config

g_config = initialize_config()

__all__ = ["g_config"]

from .user import User, UserInput

__all__ = ["User", "UserInput"]

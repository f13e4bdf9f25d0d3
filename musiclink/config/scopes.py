from enum import Enum
from typing import Iterable


class Scope(str, Enum):
    READ_PRIVATE = "user-read-private"
    READ_EMAIL = "user-read-email"
    LIBRARY_MODIFY = "user-library-modify"
    LIBRARY_READ = "user-library-read"

    @staticmethod
    def join(scopes: Iterable["Scope"]) -> str:
        return " ".join(scope.value for scope in scopes)

# -*- coding: utf-8 -*-
"""
Acting-identity provider.

Every pipeline mutation records who performed it. Authentication happens
outside the pipeline; callers set the identity here once it is known.
"""

import threading
from typing import Optional

from services.exceptions import AuthorizationException


class CurrentUserProvider:
    """Holds the current operator id (per thread)."""

    def __init__(self, user_id: Optional[str] = None):
        self._default = user_id
        self._local = threading.local()

    def set_user(self, user_id: Optional[str]) -> None:
        self._local.user_id = user_id

    def clear(self) -> None:
        self._local.user_id = None

    def get_user_id(self) -> Optional[str]:
        return getattr(self._local, "user_id", None) or self._default

    def require_user_id(self) -> str:
        """Current operator id, or AuthorizationException when nobody is acting."""
        user_id = self.get_user_id()
        if not user_id:
            raise AuthorizationException("An acting user is required for this operation")
        return user_id

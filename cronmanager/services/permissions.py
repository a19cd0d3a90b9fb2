from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class TargetIdentity:
    current_user: str
    selected_user: Optional[str] = None

    @property
    def effective_user(self) -> str:
        return self.selected_user or self.current_user


def requires_elevation(target: TargetIdentity) -> bool:
    """
    Jede Operation auf einem fremden Account läuft privilegiert,
    egal ob der Host das tatsächlich erzwingen würde.
    """
    if target.selected_user is None:
        return False
    return target.selected_user != target.current_user


def crontab_user_args(target: TargetIdentity) -> List[str]:
    if target.selected_user:
        return ["-u", target.selected_user]
    return []

"""Admin privilege helpers for Windows."""
from __future__ import annotations

import ctypes
import sys
from typing import Callable, Final, Iterable

SHELLEXECUTE_SUCCESS: Final[int] = 32
SW_SHOWNORMAL: Final[int] = 1


def is_admin() -> bool:
    try:
        return bool(ctypes.windll.shell32.IsUserAnAdmin())  # type: ignore[attr-defined]
    except AttributeError:
        return False


def relaunch_as_admin(argv: Iterable[str] | None = None) -> bool:
    """Start an elevated copy of this process. True when the UAC launch was accepted."""
    args = list(sys.argv if argv is None else argv)
    params = " ".join(f'"{arg}"' for arg in args)
    try:
        shell32 = ctypes.windll.shell32  # type: ignore[attr-defined]
    except AttributeError:
        return False
    result = shell32.ShellExecuteW(None, "runas", sys.executable, params, None, SW_SHOWNORMAL)
    return int(result) > SHELLEXECUTE_SUCCESS


def steps_needing_admin(
    selected: Iterable[str],
    admin_steps: Iterable[str],
    *,
    check: Callable[[], bool] = is_admin,
) -> list[str]:
    admin_only = {step.lower() for step in admin_steps}
    pending = [step for step in selected if step.lower() in admin_only]
    if not pending or check():
        return []
    return pending

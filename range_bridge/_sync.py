from __future__ import annotations

from typing import TYPE_CHECKING, Any

from anyio import to_thread

if TYPE_CHECKING:
    from collections.abc import Callable


async def run_sync(
    func: Callable[..., Any], /, *args: Any, abandon_on_cancel: bool = False
) -> Any:
    """Run a blocking call in a worker thread.

    With ``abandon_on_cancel`` the caller returns as soon as it is cancelled
    and the thread's result is discarded.
    """
    return await to_thread.run_sync(func, *args, abandon_on_cancel=abandon_on_cancel)

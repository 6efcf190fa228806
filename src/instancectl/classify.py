from __future__ import annotations

import httpx

from .errors import ApiError

NOT_FOUND = 404


def _status_of(err: BaseException) -> int | None:
    if isinstance(err, ApiError):
        return err.status_code
    if isinstance(err, httpx.HTTPStatusError):
        return err.response.status_code
    return None


def is_not_found(err: BaseException | None) -> bool:
    """
    Reports whether a client failure means the remote resource is absent.
    Follows the ``__cause__`` chain so wrapped errors classify the same way.
    """
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        if _status_of(err) == NOT_FOUND:
            return True
        err = err.__cause__
    return False

"""
WARDEN Access Guards

Decorators that evaluate an access decision before running a handler.

The wrapped callable receives the AccessContext through the
`access_context` keyword argument; the permission checked is the one the
decorator names, overriding whatever the context carries.
"""

import inspect
import logging
from dataclasses import replace
from functools import wraps

from warden.engine.exceptions import PermissionDeniedError
from warden.engine.models import AccessContext, Permission

logger = logging.getLogger("WARDEN_Guards")


def _check(service, permission: Permission, kwargs) -> None:
    context: AccessContext = kwargs.get("access_context")
    if context is None:
        raise PermissionDeniedError("Access context required")

    decision = service.evaluate(replace(context, permission=Permission(permission)))
    if not decision.allowed:
        logger.info(
            f"Guard denied {context.user_id}: {Permission(permission).value} on "
            f"{context.resource} ({decision.reason})"
        )
        raise PermissionDeniedError(
            f"Permission denied: {Permission(permission).value} ({decision.reason})",
            decision=decision,
        )


def require_permission(service, permission: Permission):
    """Decorator to require a permission on the requested resource."""
    def decorator(func):
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                _check(service, permission, kwargs)
                return await func(*args, **kwargs)
            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs):
            _check(service, permission, kwargs)
            return func(*args, **kwargs)
        return wrapper
    return decorator


__all__ = ["require_permission"]

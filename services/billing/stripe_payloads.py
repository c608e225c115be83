"""Plain-dict views of Stripe SDK objects."""

from typing import Any, Dict


def as_plain_dict(obj: Any) -> Dict[str, Any]:
    """Convert a `StripeObject` (recursively) or a mapping into a plain dict.

    `StripeObject` is not a dict in current SDK releases, so `.get()` is only
    safe on the converted value.
    """
    if obj is None:
        return {}
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)

"""Elicitation: obtaining one validated value from the end user.

Delivery is either native, where the host answers an elicitation request
directly, or a fallback surface backed by a registry of pending requests.
"""

__all__: list[str] = []

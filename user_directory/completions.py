"""Argument completers for server prompts.

A completer takes the partial value typed so far and the arguments already
resolved for the same prompt, and returns the matching suggestions in order.
"""

from typing import Callable, Dict, List, Optional

Completer = Callable[[str, Dict[str, str]], List[str]]

DEPARTMENTS = ["engineering", "sales", "marketing", "support"]

DEPARTMENT_MEMBERS = {
    "engineering": ["Alice", "Bob", "Charlie"],
    "sales": ["David", "Eve", "Frank"],
    "marketing": ["Grace", "Henry", "Iris"],
}

GUEST_NAMES = ["Guest"]


def complete_department(value: str, context: Dict[str, str]) -> List[str]:
    return [d for d in DEPARTMENTS if d.startswith(value)]


def complete_name(value: str, context: Dict[str, str]) -> List[str]:
    """Suggest member names for the department chosen earlier."""
    names = DEPARTMENT_MEMBERS.get(context.get("department", ""), GUEST_NAMES)
    return [n for n in names if n.startswith(value)]


PROMPT_COMPLETERS: Dict[str, Dict[str, Completer]] = {
    "user-greeting": {
        "department": complete_department,
        "name": complete_name,
    },
}


def complete(
    prompt_name: str,
    argument_name: str,
    value: str,
    context: Optional[Dict[str, str]] = None,
) -> Optional[List[str]]:
    """Run the completer registered for a prompt argument.

    Returns:
        Suggestions, or None when the argument has no completer
    """
    completer = PROMPT_COMPLETERS.get(prompt_name, {}).get(argument_name)
    if completer is None:
        return None
    return completer(value, context or {})

"""
Authorized key merging

Example:
    from tools.dsh.keys import merge_keys

    merge_keys("userauthkeys", ["admingrouppubkey"])
    # "userauthkeys\\nadmingrouppubkey"
"""

from typing import Iterable, List, Optional


def split_keys(blob: Optional[str]) -> List[str]:
    """Non-empty lines of an authorized_keys blob, in file order"""
    if not blob:
        return []
    return [line for line in blob.splitlines() if line.strip()]


def merge_keys(existing: Optional[str], discovered: Iterable[Optional[str]]) -> str:
    """
    Merge discovered keys into existing authorized_keys content

    Existing lines keep their order and come first, repeats dropped; each
    discovered key is appended once, compared as a whole line. The result has no trailing
    newline, and merging a result again with the same keys returns it unchanged.

    Args:
        existing: Current authorized_keys content (may be empty)
        discovered: Keys found in the directory, in directory order

    Returns:
        The merged authorized_keys content
    """
    merged = []
    seen = set()
    for line in split_keys(existing):
        if line not in seen:
            seen.add(line)
            merged.append(line)
    for key in discovered:
        if not key:
            continue
        key = key.strip()
        if key and key not in seen:
            seen.add(key)
            merged.append(key)
    return "\n".join(merged)

"""Assembly of flat post rows into nested reply trees."""

from collections import defaultdict
from typing import Callable, Dict, List, Optional, Sequence

from forum.models import Post


def group_by_parent(replies: Sequence[Post]) -> Dict[int, List[Post]]:
    """Index replies by ``parent_post_id``, keeping their input order."""
    children: Dict[int, List[Post]] = defaultdict(list)
    for reply in replies:
        if reply.parent_post_id is not None:
            children[reply.parent_post_id].append(reply)
    return children


def build_thread(
    roots: Sequence[Post],
    replies: Sequence[Post],
    serialize: Callable[[Post], dict],
    max_depth: Optional[int] = None,
) -> List[dict]:
    """
    Nest replies under their direct parents, starting from the given roots.

    Only replies reachable from a root through non-deleted parents are
    attached; callers pass non-deleted rows only, so a reply whose parent
    was deleted is dropped with it. Every post is emitted at most once,
    which also breaks any parent cycle in bad data.

    The walk uses an explicit stack, so chain length is not bounded by the
    interpreter's recursion limit. With ``max_depth`` set, replies below
    that depth are listed right after their ancestor at ``max_depth``
    instead of being nested further.

    Args:
        roots: Top-level posts of the current page, in display order
        replies: Candidate replies (any depth) for the same topic
        serialize: Converts one post row into its JSON dict
        max_depth: Deepest nesting level rendered (roots are level 0)

    Returns:
        List of root dicts, each with a ``replies`` list
    """
    children = group_by_parent(replies)
    emitted = set()
    tree: List[dict] = []

    # (post, list the node is appended to, nesting depth)
    stack = [(root, tree, 0) for root in reversed(roots)]
    while stack:
        post, siblings, depth = stack.pop()
        if post.id in emitted:
            continue
        emitted.add(post.id)

        node = serialize(post)
        node["replies"] = []
        siblings.append(node)

        if max_depth is None or depth < max_depth:
            target, child_depth = node["replies"], depth + 1
        else:
            target, child_depth = siblings, depth
        for child in reversed(children.get(post.id, [])):
            stack.append((child, target, child_depth))

    return tree

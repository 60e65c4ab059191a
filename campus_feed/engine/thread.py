"""Reconstruction of nested comment threads from flat comment lists."""

import logging
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from campus_feed.models.feed import Comment, CommentNode

logger = logging.getLogger(__name__)

DEFAULT_MAX_REPLY_DEPTH = 3


def _newest_first(nodes: List[CommentNode]) -> None:
    nodes.sort(key=lambda node: node.created_at, reverse=True)


def build_comment_tree(comments: Iterable[Comment]) -> List[CommentNode]:
    """
    Nest a flat list of comments into reply trees.

    Every comment appears exactly once in the result. Comments whose parent
    is missing from the input are promoted to roots instead of being dropped.
    When two comments share an id the later one wins.

    Roots and every replies list are ordered newest first by ``created_at``.
    The sort is stable, so equal timestamps keep their input order.

    Args:
        comments: Comments of one post, in any order

    Returns:
        Root nodes; descendants are reachable through ``replies``
    """
    comments = list(comments)

    index: Dict[str, CommentNode] = {}
    for comment in comments:
        if comment.id in index:
            logger.warning(f"Duplicate comment id {comment.id}; keeping the last occurrence")
        index[comment.id] = CommentNode(comment)

    roots: List[CommentNode] = []
    parents: Dict[str, CommentNode] = {}
    for node in index.values():
        parent_id = node.comment.parent_comment_id
        if parent_id is None:
            roots.append(node)
            continue
        parent = index.get(parent_id)
        if parent is None:
            logger.warning(
                f"Comment {node.id} references missing parent {parent_id}; promoting to root"
            )
            roots.append(node)
            continue
        parent.replies.append(node)
        parents[node.id] = parent

    _promote_cycles(index, roots, parents)

    _newest_first(roots)
    for node in index.values():
        _newest_first(node.replies)
    return roots


def _promote_cycles(
    index: Dict[str, CommentNode],
    roots: List[CommentNode],
    parents: Dict[str, CommentNode],
) -> None:
    """Detach comments caught in parent cycles and make them roots."""
    reached: Set[str] = set()
    for root in roots:
        reached.update(node.id for node, _ in walk_thread([root]))

    for node in index.values():
        if node.id in reached:
            continue
        logger.warning(f"Comment {node.id} is part of a parent cycle; promoting to root")
        parent = parents.pop(node.id)
        parent.replies = [reply for reply in parent.replies if reply is not node]
        roots.append(node)
        reached.update(child.id for child, _ in walk_thread([node]))


def walk_thread(roots: Iterable[CommentNode]) -> Iterator[Tuple[CommentNode, int]]:
    """
    Depth-first, pre-order walk over a comment forest.

    Yields:
        (node, depth) pairs, with roots at depth 0
    """
    stack = [(root, 0) for root in reversed(list(roots))]
    while stack:
        node, depth = stack.pop()
        yield node, depth
        stack.extend((reply, depth + 1) for reply in reversed(node.replies))


def thread_size(roots: Iterable[CommentNode]) -> int:
    """Total number of nodes in the forest."""
    return sum(1 for _ in walk_thread(roots))


def find_depth(roots: Iterable[CommentNode], comment_id: str) -> Optional[int]:
    """Depth of ``comment_id`` in the forest, or None if it is absent."""
    for node, depth in walk_thread(roots):
        if node.id == comment_id:
            return depth
    return None


def can_reply(depth: int, max_reply_depth: int = DEFAULT_MAX_REPLY_DEPTH) -> bool:
    """Whether a comment at ``depth`` should offer a reply action."""
    return depth < max_reply_depth

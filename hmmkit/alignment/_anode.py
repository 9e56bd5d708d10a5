from typing import Any, List, Optional, Sequence


class ANode:
    r""" A node of an alignment tree, covering the half-open frame interval :code:`[start, end)`.

    A valid tree satisfies the following:

    * a child interval is contained in the interval of its parent,
    * the children of a node partition the parent interval exactly, without gaps or overlaps,
    * all leaves sit at the same depth, i.e., the tree is balanced.

    Parameters
    ----------
    start : int
        First frame (inclusive).
    end : int
        Last frame (exclusive).
    name : str, optional, default=''
        Name of the aligned unit.
    value : object, optional, default=None
        An arbitrary JSON-serializable user value.
    parent : ANode, optional, default=None
        The parent node, None for the root.

    Examples
    --------
    >>> root = ANode(0, 10, "hello")
    >>> _ = root.append_child(4, "h")
    >>> _ = root.append_child(10, "ello")
    >>> root.is_valid()
    True
    >>> [[n.name for n in level] for level in root.by_level()]
    [['h', 'ello'], ['hello']]
    """

    def __init__(self, start: int, end: int, name: str = '', value: Any = None, parent: Optional["ANode"] = None):
        if end < start:
            raise ValueError(f"Alignment node end ({end}) must not precede its start ({start}).")
        self.start = int(start)
        self.end = int(end)
        self.name = name
        self.value = value
        self.parent = parent
        self.children: List["ANode"] = []

    def __len__(self):
        return self.end - self.start

    def __repr__(self):
        return f"ANode([{self.start}, {self.end}), name={self.name!r}, n_children={len(self.children)})"

    def __eq__(self, other):
        if not isinstance(other, ANode):
            return NotImplemented
        return self.start == other.start and self.end == other.end and self.name == other.name \
            and self.value == other.value and self.children == other.children

    def __ne__(self, other):
        eq = self.__eq__(other)
        return eq if eq is NotImplemented else not eq

    __hash__ = None

    @property
    def is_leaf(self) -> bool:
        r""" Whether this node has no children. """
        return len(self.children) == 0

    def append_child(self, end: int, name: str = '', value: Any = None) -> "ANode":
        r""" Appends a child which starts where the previous sibling ended (or at the start of this node
        if there are no children yet).

        Parameters
        ----------
        end : int
            End of the child interval (exclusive).
        name : str, optional, default=''
            Name of the child.
        value : object, optional, default=None
            User value of the child.

        Returns
        -------
        child : ANode
            The new child node.
        """
        start = self.children[-1].end if self.children else self.start
        if end < start:
            raise ValueError(f"Child end ({end}) must not precede its start ({start}).")
        if end > self.end:
            raise ValueError(f"Child end ({end}) exceeds the parent interval [{self.start}, {self.end}).")
        child = ANode(start, end, name, value, parent=self)
        self.children.append(child)
        return child

    def height(self) -> int:
        r""" Number of edges on the longest path from this node down to a leaf. """
        if self.is_leaf:
            return 0
        return 1 + max(c.height() for c in self.children)

    def _leaf_depths(self, depth=0):
        if self.is_leaf:
            yield depth
        else:
            for c in self.children:
                yield from c._leaf_depths(depth + 1)

    def is_valid(self) -> bool:
        r""" Checks the interval partitioning and balanced-depth invariants for the subtree rooted here. """
        if self.end < self.start:
            return False
        if len(set(self._leaf_depths())) > 1:
            return False
        return self._is_partitioned()

    def _is_partitioned(self) -> bool:
        if self.is_leaf:
            return True
        last = self.start
        for c in self.children:
            if c.start != last or c.end < c.start or not c._is_partitioned():
                return False
            last = c.end
        return last == self.end

    def leaves(self) -> List["ANode"]:
        r""" The leaves of this subtree in frame order. """
        if self.is_leaf:
            return [self]
        return [leaf for c in self.children for leaf in c.leaves()]

    def by_level(self) -> List[List["ANode"]]:
        r""" Level-wise view of the (balanced) subtree rooted at this node. Index 0 contains the leaves,
        the last index contains only this node.

        Returns
        -------
        levels : list of list of ANode
            Nodes per level, each in frame order.
        """
        levels = [[self]]
        while any(not n.is_leaf for n in levels[-1]):
            levels.append([c for n in levels[-1] for c in n.children])
        return levels[::-1]

    def to_dict(self) -> dict:
        r""" JSON representation of this node alone, children are not included. """
        out = {"s": self.start, "e": self.end, "n": self.name}
        if self.value is not None:
            out["v"] = self.value
        return out

    @classmethod
    def from_dict(cls, d: dict) -> "ANode":
        return cls(int(d["s"]), int(d["e"]), d.get("n", ''), d.get("v", None))

    def to_json(self) -> List[List[dict]]:
        r""" Level-wise JSON layout of this subtree, index 0 holding the leaves. """
        return [[n.to_dict() for n in level] for level in self.by_level()]

    @staticmethod
    def from_json(levels: Sequence[Sequence[dict]]) -> "ANode":
        r""" Inverse of :meth:`to_json`. """
        return tree_of([[ANode.from_dict(d) for d in level] for level in levels])

    @staticmethod
    def from_labels(labels: Sequence[str], name: str = '') -> "ANode":
        r""" Creates a two-level tree from frame labels by collapsing runs of equal consecutive labels
        into one child each.

        Parameters
        ----------
        labels : sequence of str
            One label per frame.
        name : str, optional, default=''
            Name of the root node.

        Returns
        -------
        root : ANode
            Root covering all frames with one child per run.

        Examples
        --------
        >>> root = ANode.from_labels(["a", "a", "b", "a"])
        >>> [(c.start, c.end, c.name) for c in root.children]
        [(0, 2, 'a'), (2, 3, 'b'), (3, 4, 'a')]
        """
        root = ANode(0, len(labels), name)
        for t, label in enumerate(labels):
            if root.children and root.children[-1].name == label:
                root.children[-1].end = t + 1
            else:
                root.append_child(t + 1, label)
        return root


def tree_of(levels: Sequence[Sequence[ANode]]) -> ANode:
    r""" Rebuilds parent and children links from a level-wise layout as produced by :meth:`ANode.by_level`.
    Existing links of the given nodes are replaced.

    Every node is attached to the first node one level up whose interval contains it. A zero-length node
    :code:`[k, k)` lies on the boundary of two adjacent parents; it is attached to the parent starting at `k`,
    and only to the parent ending at `k` if there is no such parent. Trees holding zero-length nodes at the
    end of a non-final parent therefore do not survive the level-wise layout unchanged.

    Parameters
    ----------
    levels : sequence of sequence of ANode
        Nodes per level in frame order, index 0 holding the leaves. The last level must contain exactly
        one node, the root.

    Returns
    -------
    root : ANode
        The root of the rebuilt tree.
    """
    if len(levels) == 0 or len(levels[-1]) != 1:
        raise ValueError("The top level of an alignment must consist of exactly one root node.")
    for level in levels:
        for node in level:
            node.parent = None
            node.children = []
    for depth in range(len(levels) - 2, -1, -1):
        parents = levels[depth + 1]
        p = 0
        for node in levels[depth]:
            while p < len(parents) and not (parents[p].start <= node.start and node.end <= parents[p].end):
                p += 1
            if p == len(parents):
                raise ValueError(f"Alignment node {node} is not contained in any node one level up.")
            if node.start == node.end == parents[p].end > parents[p].start and p + 1 < len(parents) \
                    and parents[p + 1].start == node.start:
                p += 1
            node.parent = parents[p]
            parents[p].children.append(node)
    return levels[-1][0]

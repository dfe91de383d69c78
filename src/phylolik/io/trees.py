"""
Phylogenetic tree parsing and manipulation.

Trees are stored as an arena: a list of :class:`TreeNode` records indexed by
integer id, plus a name-to-id map built once at construction. Likelihood
code walks the precomputed post-order branch list and only uses ids.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Iterable, Optional

from ..exceptions import TreeException
from ..parameters import Parameter, Parameters


@dataclass
class TreeNode:
    """
    Phylogenetic tree node.

    Attributes
    ----------
    id : int
        Index of the node in the tree's arena
    name : str
        Unique node name (generated for unnamed internal nodes)
    parent : Optional[int]
        Parent node id, None for the root
    children : list[int]
        Child node ids
    branch_length : Optional[float]
        Length of the branch to the parent, None if not given
    """

    id: int
    name: str
    parent: Optional[int] = None
    children: list[int] = field(default_factory=list)
    branch_length: Optional[float] = None

    @property
    def is_leaf(self) -> bool:
        """Check if node is a leaf."""
        return len(self.children) == 0


@dataclass(frozen=True)
class Branch:
    """Branch from ``parent`` to ``child``; the child name identifies it."""

    parent: str
    child: str
    length: Optional[float]
    parent_id: int
    child_id: int


class Tree:
    """
    Rooted phylogenetic tree.

    Parameters
    ----------
    nodes : list[TreeNode]
        Node arena; ``nodes[i].id`` must equal ``i``
    root : int
        Id of the root node

    Raises
    ------
    TreeException
        If node names are not unique or the arena is inconsistent
    """

    def __init__(self, nodes: list[TreeNode], root: int):
        self.nodes = nodes
        self.root_id = root
        self.index: dict[str, int] = {}
        for i, node in enumerate(nodes):
            if node.id != i:
                raise TreeException(f"Node '{node.name}' stored at position {i} has id {node.id}")
            if node.name in self.index:
                raise TreeException(f"Tree contains more than one node named '{node.name}'")
            self.index[node.name] = i
        if nodes[root].parent is not None:
            raise TreeException("Root node has a parent")

        self._postorder = self._compute_postorder()
        if len(self._postorder) != len(nodes):
            raise TreeException("Tree appears to be disjoint or a network")

        self.branches: list[Branch] = [
            Branch(
                parent=nodes[node.parent].name,
                child=node.name,
                length=node.branch_length,
                parent_id=node.parent,
                child_id=node.id,
            )
            for node in self._postorder
            if node.parent is not None
        ]
        self.branches_reversed: list[Branch] = self.branches[::-1]
        self._branch_by_child = {b.child: i for i, b in enumerate(self.branches)}

        self.leaves: list[str] = [n.name for n in self.preorder() if n.is_leaf]
        self.internal: list[str] = [n.name for n in self._postorder if not n.is_leaf]

    @classmethod
    def from_newick(cls, newick_string: str) -> "Tree":
        """
        Parse Newick format tree string.

        Internal node names are read where present and generated
        otherwise. Branch lengths are optional.

        Parameters
        ----------
        newick_string : str
            Newick format tree

        Returns
        -------
        Tree
            Parsed tree

        Examples
        --------
        >>> t = Tree.from_newick("((A:0.1,B:0.2)AB:0.05,C:0.3)root;")
        >>> t.leaves
        ['A', 'B', 'C']
        >>> t.branch_length("AB")
        0.05
        """
        # Remove comments
        newick = re.sub(r'//.*', '', newick_string)
        newick = re.sub(r'/\s*\*.*?\*\s*/', '', newick, flags=re.S)
        newick = re.sub(r'\[[^\]]*\]', '', newick)
        newick = newick.strip()

        if ';' not in newick:
            raise TreeException("Invalid Newick format: missing semicolon")

        lines = newick.split('\n')
        tree_lines = []
        for line in lines:
            # Skip lines that look like PAML headers (just numbers)
            if line.strip() and not re.match(r'^\s*\d+\s+\d+\s*$', line):
                tree_lines.append(line)
                if ';' in line:
                    break

        if not tree_lines:
            raise TreeException("Invalid Newick format: no tree found")

        tree_line = ''.join(tree_lines)
        tree_line = tree_line.replace('\n', '').replace('\t', '').replace('\r', '')
        tree_line = tree_line[:tree_line.index(';')]

        nodes: list[TreeNode] = []

        def skip_whitespace(s: str, pos: int) -> int:
            while pos < len(s) and s[pos] in ' \t\n\r':
                pos += 1
            return pos

        def parse_node(s: str, start: int, parent: Optional[int] = None) -> tuple[int, int]:
            """Parse a node from position start in string s."""
            node = TreeNode(id=len(nodes), name="", parent=parent)
            nodes.append(node)
            pos = skip_whitespace(s, start)

            if pos < len(s) and s[pos] == '(':
                pos = skip_whitespace(s, pos + 1)
                while True:
                    child, pos = parse_node(s, pos, node.id)
                    node.children.append(child)
                    pos = skip_whitespace(s, pos)

                    if pos < len(s) and s[pos] == ',':
                        pos = skip_whitespace(s, pos + 1)
                        continue
                    elif pos < len(s) and s[pos] == ')':
                        pos = skip_whitespace(s, pos + 1)
                        break
                    else:
                        raise TreeException(f"Expected ',' or ')' at position {pos}")

            name_start = pos
            while pos < len(s) and s[pos] not in ',:();':
                pos += 1
            node.name = s[name_start:pos].strip().strip("'\"")

            pos = skip_whitespace(s, pos)

            if pos < len(s) and s[pos] == ':':
                pos = skip_whitespace(s, pos + 1)
                length_start = pos
                while pos < len(s) and s[pos] not in ',(); \t\n\r':
                    pos += 1
                try:
                    node.branch_length = float(s[length_start:pos])
                except ValueError:
                    raise TreeException(f"Invalid branch length: {s[length_start:pos]}") from None

            return node.id, pos

        _, pos = parse_node(tree_line, 0, None)
        if skip_whitespace(tree_line, pos) != len(tree_line):
            raise TreeException(f"Unexpected text after tree at position {pos}")

        _name_unnamed(nodes)
        return cls(nodes, 0)

    @classmethod
    def from_file(cls, filepath) -> "Tree":
        with open(filepath, 'r') as f:
            return cls.from_newick(f.read())

    @classmethod
    def from_branches(cls, branches: Iterable[tuple]) -> "Tree":
        """
        Build a tree from ``(parent, child)`` or ``(parent, child, length)`` tuples.

        Raises
        ------
        TreeException
            If the branches do not form a single rooted tree
        """
        nodes: list[TreeNode] = []
        index: dict[str, int] = {}

        def node_for(name: str) -> TreeNode:
            if name not in index:
                index[name] = len(nodes)
                nodes.append(TreeNode(id=len(nodes), name=name))
            return nodes[index[name]]

        for branch in branches:
            parent, child = node_for(branch[0]), node_for(branch[1])
            if child.parent is not None:
                raise TreeException(f"Node '{child.name}' has more than one parent")
            child.parent = parent.id
            child.branch_length = branch[2] if len(branch) > 2 else None
            parent.children.append(child.id)

        roots = [n.id for n in nodes if n.parent is None]
        if len(roots) != 1:
            raise TreeException("Tree appears to be disjoint or a network")
        return cls(nodes, roots[0])

    @property
    def root(self) -> str:
        return self.nodes[self.root_id].name

    @property
    def n_nodes(self) -> int:
        return len(self.nodes)

    @property
    def n_leaves(self) -> int:
        return len(self.leaves)

    @property
    def leaf_names(self) -> list[str]:
        return self.leaves

    def node(self, name: str) -> TreeNode:
        try:
            return self.nodes[self.index[name]]
        except KeyError:
            raise TreeException(f"Node '{name}' does not exist") from None

    def postorder(self) -> list[TreeNode]:
        """
        Return nodes in post-order traversal (leaves to root).

        Returns
        -------
        list[TreeNode]
            Nodes in post-order
        """
        return list(self._postorder)

    def preorder(self) -> list[TreeNode]:
        """Return nodes with every parent before its children (root first)."""
        result = []
        stack = [self.root_id]
        while stack:
            node = self.nodes[stack.pop()]
            result.append(node)
            stack.extend(reversed(node.children))
        return result

    def get_branches(self) -> list[Branch]:
        """Branches in post-order: every branch appears before its parent's branch."""
        return list(self.branches)

    def branch_by_child(self, child: str) -> Branch:
        if child == self.root:
            raise TreeException("The root node is not a child on any branch")
        try:
            return self.branches[self._branch_by_child[child]]
        except KeyError:
            raise TreeException(f"Node '{child}' does not exist") from None

    def branch_index(self, child: str) -> int:
        """Position of the branch above ``child`` in :attr:`branches`."""
        return self._branch_by_child[self.branch_by_child(child).child]

    def branch_length(self, child: str) -> float:
        length = self.branch_by_child(child).length
        if length is None:
            raise TreeException(f"Branch above '{child}' has no length")
        return length

    def parent_of(self, child: str) -> str:
        return self.branch_by_child(child).parent

    def children_of(self, name: str) -> list[str]:
        return [self.nodes[c].name for c in self.node(name).children]

    def is_leaf(self, name: str) -> bool:
        return self.node(name).is_leaf

    @property
    def total_length(self) -> float:
        return sum(self.branch_length(b.child) for b in self.branches)

    def parameters(self) -> Parameters:
        """Fixed parameters holding each branch length, named after the child node."""
        return Parameters(Parameter.fixed(b.child, self.branch_length(b.child)) for b in self.branches)

    def parameters_for_estimation(self) -> Parameters:
        """Estimated positive parameters, one per branch, named after the child node."""
        return Parameters(
            Parameter.estimated_positive(b.child, b.length if b.length is not None else 1.0)
            for b in self.branches
        )

    def with_lengths(self, lengths: dict[str, float]) -> "Tree":
        """Copy of the tree with branch lengths taken from ``lengths``."""
        nodes = [replace(n, children=list(n.children)) for n in self.nodes]
        for node in nodes:
            if node.parent is not None:
                if node.name not in lengths:
                    raise TreeException(f"No length given for branch above '{node.name}'")
                node.branch_length = float(lengths[node.name])
        return Tree(nodes, self.root_id)

    def with_parameters(self, parameters: Parameters) -> "Tree":
        """Copy of the tree with each branch length read from the parameter named after its child."""
        return self.with_lengths({b.child: parameters.value(b.child) for b in self.branches})

    def scaled_to(self, length: float) -> "Tree":
        """Copy of the tree with branch lengths scaled so the total is ``length``."""
        factor = length / self.total_length
        return self.with_lengths({b.child: self.branch_length(b.child) * factor for b in self.branches})

    def to_newick(self, name_internal: bool = True) -> str:
        def write(node_id: int) -> str:
            node = self.nodes[node_id]
            text = ""
            if node.children:
                text = "(" + ",".join(write(c) for c in node.children) + ")"
                if name_internal:
                    text += node.name
            else:
                text = node.name
            if node.branch_length is not None:
                text += f":{node.branch_length:g}"
            return text

        return write(self.root_id) + ";"

    def _compute_postorder(self) -> list[TreeNode]:
        result = []
        seen = set()
        stack = [(self.root_id, False)]
        while stack:
            node_id, expanded = stack.pop()
            if expanded:
                result.append(self.nodes[node_id])
                continue
            if node_id in seen:
                raise TreeException("Tree contains a cycle")
            seen.add(node_id)
            stack.append((node_id, True))
            for child in reversed(self.nodes[node_id].children):
                stack.append((child, False))
        return result

    def __repr__(self) -> str:
        return f"Tree(n_nodes={self.n_nodes}, n_leaves={self.n_leaves}, root='{self.root}')"


def _name_unnamed(nodes: list[TreeNode]) -> None:
    used = {n.name for n in nodes if n.name}
    counter = 1
    for node in nodes:
        if node.name:
            continue
        while f"node{counter}" in used:
            counter += 1
        node.name = f"node{counter}"
        used.add(node.name)

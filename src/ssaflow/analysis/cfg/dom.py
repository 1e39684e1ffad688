"""Dominance analysis for control flow graphs.

This module builds dominator and post-dominator trees over the basic blocks
of a CFG and computes iterated dominance frontiers.

- A block A dominates block B if all paths from the entry to B pass through A
- A post-dominates B if all paths from B to the exit pass through A
- The iterated dominance frontier (IDF) of a set of blocks is the minimal set
  of merge points needing a phi for a variable defined in those blocks

Each tree node is numbered in pre- and post-order so that dominance queries
are constant time. Edges of the CFG that are not dominator tree edges are
join edges; the IDF walk follows them in the manner of a DJ graph, visiting
definition blocks from the deepest tree level upwards. All traversals use
explicit stacks.
"""

import heapq

from ssaflow.util.graphalgorithim import dominator


class DomTreeNode(object):
    """Node in a dominator tree.

    Attributes:
        idom: Immediate dominator, or -1 for the root and unreachable blocks.
        level: Depth in the tree (root is 0).
        children: Immediately dominated blocks, in increasing order.
        pre: Pre-order number in the tree traversal.
        post: Post-order number in the tree traversal.
    """
    __slots__ = "idom", "level", "children", "pre", "post"

    def __init__(self):
        self.idom = -1
        self.level = -1
        self.children = []
        self.pre = -1
        self.post = -1

    @property
    def reachable(self):
        return self.pre >= 0


class DomTree(object):
    """Dominator tree over integer block labels ``0..n-1``.

    Attributes:
        root: Root of the tree (the entry, or the virtual exit).
        nodes: One ``DomTreeNode`` per block.
        order: Reverse post-order of the reachable blocks.
    """

    def __init__(self, succs, root, count):
        self.root = root
        self.nodes = [DomTreeNode() for _ in range(count)]

        idoms, self.order = dominator.findIDoms(succs, root)
        for node, idom in idoms.items():
            self.nodes[node].idom = idom
        for node, children in dominator.treeFromIDoms(idoms).items():
            self.nodes[node].children = children

        self.number()

    def number(self):
        uid = 0
        self.nodes[self.root].level = 0
        stack = [(self.root, iter(self.nodes[self.root].children))]
        self.nodes[self.root].pre = uid
        uid += 1
        while stack:
            node, children = stack[-1]
            child = next(children, None)
            if child is None:
                self.nodes[node].post = uid
                uid += 1
                stack.pop()
            else:
                cnode = self.nodes[child]
                cnode.level = self.nodes[node].level + 1
                cnode.pre = uid
                uid += 1
                stack.append((child, iter(cnode.children)))

    def dominates(self, a, b):
        """True if ``a`` dominates ``b``. Every block dominates itself."""
        if a == b:
            return True
        na = self.nodes[a]
        nb = self.nodes[b]
        if not (na.reachable and nb.reachable):
            return False
        return na.pre <= nb.pre and na.post >= nb.post

    def idom(self, b):
        return self.nodes[b].idom

    def preorder(self):
        """Reachable blocks in dominator tree pre-order."""
        result = []
        stack = [self.root]
        while stack:
            node = stack.pop()
            result.append(node)
            stack.extend(reversed(self.nodes[node].children))
        return result

    def __len__(self):
        return len(self.nodes)


def construct_domtree(blocks):
    """Dominator tree of a list of ``BasicBlock`` rooted at block 0."""
    succs = {i: b.succs for i, b in enumerate(blocks)}
    return DomTree(succs, 0, len(blocks))


def construct_postdomtree(blocks):
    """Post-dominator tree of a list of ``BasicBlock``.

    Every block without successors is connected to a virtual exit with label
    ``len(blocks)``, which is the root. Blocks that cannot reach an exit are
    not part of the tree.
    """
    exit = len(blocks)
    preds = {exit: [i for i, b in enumerate(blocks) if not b.succs]}
    for i, b in enumerate(blocks):
        preds[i] = b.preds
    return DomTree(preds, exit, exit + 1)


def postdominates(postdomtree, a, b):
    return postdomtree.dominates(a, b)


class BlockLiveness(object):
    """Definition blocks and live-in blocks of one variable.

    Attributes:
        def_bbs: Blocks containing a definition.
        live_in_bbs: Blocks where the variable is live on entry, or None when
            no liveness pruning should be applied.
    """
    __slots__ = "def_bbs", "live_in_bbs"

    def __init__(self, def_bbs, live_in_bbs=None):
        self.def_bbs = list(def_bbs)
        self.live_in_bbs = live_in_bbs


def iterated_dominance_frontier(cfg, liveness, domtree):
    """Blocks needing a phi for a variable defined in ``liveness.def_bbs``.

    Definition blocks are processed from the deepest dominator tree level up.
    From each one the dominator subtree is walked; a join edge into a block
    whose level does not exceed the root's level is a frontier block. A
    frontier block that is not itself a definition is pushed back as a root.
    Subtrees are only ever walked once.

    Returns:
        Frontier blocks in discovery order.
    """
    nodes = domtree.nodes
    defs = set(liveness.def_bbs)
    live_in = liveness.live_in_bbs

    heap = []
    for d in defs:
        if nodes[d].reachable:
            heapq.heappush(heap, (-nodes[d].level, d))

    phiblocks = []
    processed = set()
    visited = set()
    blocks = cfg.blocks if hasattr(cfg, "blocks") else cfg

    while heap:
        neglevel, root = heapq.heappop(heap)
        level = -neglevel
        visited.add(root)

        worklist = [root]
        while worklist:
            active = worklist.pop()
            for succ in blocks[active].succs:
                succ_level = nodes[succ].level
                if succ_level > level:
                    continue
                if succ in processed:
                    continue
                processed.add(succ)
                if live_in is not None and succ not in live_in:
                    continue
                phiblocks.append(succ)
                if succ not in defs:
                    heapq.heappush(heap, (-succ_level, succ))

            for child in nodes[active].children:
                if child in visited:
                    continue
                visited.add(child)
                worklist.append(child)

    return phiblocks

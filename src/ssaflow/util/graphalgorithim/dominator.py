"""
Immediate dominator computation over integer-labelled graphs.

A node d dominates a node n if every path from the entry to n passes through
d. The immediate dominator (idom) of n is the unique strict dominator of n
that is dominated by every other strict dominator of n.

The algorithm is the iterative scheme of Cooper, Harvey and Kennedy: number
the nodes in reverse post-order, then repeatedly intersect the dominator
chains of each node's processed predecessors until nothing changes.
Post-dominators are obtained by running the same routine on the reversed
graph from a virtual exit.
"""


def intersect(doms, b1, b2):
    """
    Walk two dominator chains up until they meet.

    Parameters
    ----------
    doms : list
        ``doms[i]`` is the current immediate dominator of node ``i`` in
        reverse post-order numbering.
    b1, b2 : int
        Nodes in reverse post-order numbering.

    Returns
    -------
    int
        The nearest common dominator of ``b1`` and ``b2``.
    """
    finger1 = b1
    finger2 = b2
    while finger1 != finger2:
        while finger1 > finger2:
            finger1 = doms[finger1]
        while finger2 > finger1:
            finger2 = doms[finger2]
    return finger1


class ReversePostorderCrawler(object):
    """
    Depth-first traversal producing a reverse post-order of the nodes
    reachable from ``head``.

    Uses an explicit stack so deep graphs do not hit the recursion limit.
    Unlike a whole-graph crawl, nodes unreachable from the head are left out;
    they have no dominators.
    """

    def __init__(self, G, head):
        """
        Parameters
        ----------
        G : dict
            Maps each node to an iterable of successors.
        head : hashable
            Entry node.
        """
        self.G = G
        self.head = head

        self.processed = set((self.head,))
        self.order = []

        stack = [(head, iter(self.G.get(head, ())))]
        while stack:
            _parent, children = stack[-1]
            child = next(children, None)
            if child is None:
                self.order.append(stack[-1][0])
                stack.pop()
            elif child not in self.processed:
                self.processed.add(child)
                stack.append((child, iter(self.G.get(child, ()))))

        self.order.reverse()


def findIDoms(G, head):
    """
    Compute immediate dominators of every node reachable from ``head``.

    Parameters
    ----------
    G : dict
        Maps each node to an iterable of successors.
    head : hashable
        Entry node.

    Returns
    -------
    tuple of (dict, list)
        ``idoms`` maps each reachable node other than ``head`` to its
        immediate dominator; the list is the reverse post-order used.
    """
    order = ReversePostorderCrawler(G, head).order

    forward = {}
    for i, node in enumerate(order):
        forward[node] = i

    pred = [[] for _ in order]
    for node in order:
        i = forward[node]
        for nextNode in G.get(node, ()):
            n = forward.get(nextNode)
            # Self-cycles and edges into unreachable nodes carry no information.
            if n is None or n == i:
                continue
            pred[n].append(i)

    count = len(order)
    doms = [None] * count
    doms[0] = 0

    changed = True
    while changed:
        changed = False
        for node in range(1, count):
            new_idom = None
            for p in pred[node]:
                if doms[p] is None:
                    continue
                if new_idom is None:
                    new_idom = p
                else:
                    new_idom = intersect(doms, new_idom, p)

            if doms[node] != new_idom:
                doms[node] = new_idom
                changed = True

    idoms = {}
    for node, idom in enumerate(doms):
        if node == 0:
            continue
        idoms[order[node]] = order[idom]

    return idoms, order


def treeFromIDoms(idoms):
    """Invert an idom mapping into ``{dominator: [dominated, ...]}``."""
    tree = {}
    for node, idom in idoms.items():
        if idom not in tree:
            tree[idom] = [node]
        else:
            tree[idom].append(node)
    for children in tree.values():
        children.sort()
    return tree

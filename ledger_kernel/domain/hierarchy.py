"""
Hierarchy -- chart-of-accounts tree construction.

Responsibility:
    Turns a flat list of accounts into a parent -> children forest and
    aggregates balances up the tree for reporting.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Called by
    AccountSelector.hierarchy() and usable on any list of AccountInfo.

Invariants enforced:
    - Output depends only on the set of accounts, never on input order:
      roots and children are sorted by code.
    - An account whose parent is not in the input becomes a root.
    - Every input account appears exactly once in the forest.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Iterator
from uuid import UUID

from ledger_kernel.domain.dtos import AccountInfo


@dataclass(eq=False)
class AccountNode:
    """An account and its ordered children."""

    account: AccountInfo
    children: list[AccountNode] = field(default_factory=list)

    @property
    def code(self) -> str:
        return self.account.code

    def walk(self) -> Iterator[tuple[int, AccountNode]]:
        """Depth-first (depth, node) pairs, this node first at depth 0."""
        stack: list[tuple[int, AccountNode]] = [(0, self)]
        while stack:
            depth, node = stack.pop()
            yield depth, node
            for child in reversed(node.children):
                stack.append((depth + 1, child))


def build_hierarchy(accounts: Iterable[AccountInfo]) -> list[AccountNode]:
    """
    Build a forest keyed by parent_id.

    Roots are accounts with no parent_id, or whose parent_id does not
    resolve to an account in ``accounts``.  A parent chain that loops back
    on itself is broken at the member with the lowest code, which is
    promoted to a root.

    Returns:
        Root nodes sorted by code; every node's children sorted by code.
    """
    nodes: dict[UUID, AccountNode] = {}
    for account in accounts:
        nodes[account.id] = AccountNode(account=account)

    roots: list[AccountNode] = []
    for node in nodes.values():
        parent_id = node.account.parent_id
        if parent_id is None or parent_id not in nodes or parent_id == node.account.id:
            roots.append(node)
        else:
            nodes[parent_id].children.append(node)

    for node in nodes.values():
        node.children.sort(key=lambda n: n.code)

    # Cycles never reach a root; promote one member of each.
    reached: set[UUID] = set()
    for root in roots:
        reached.update(n.account.id for _, n in root.walk())
    for node in sorted(nodes.values(), key=lambda n: n.code):
        if node.account.id in reached:
            continue
        # Walk up until the chain repeats; the repeated stretch is the cycle.
        chain: list[UUID] = []
        current_id = node.account.id
        while current_id not in chain:
            chain.append(current_id)
            current_id = nodes[current_id].account.parent_id
        cycle = [nodes[i] for i in chain[chain.index(current_id):]]
        head = min(cycle, key=lambda n: n.code)
        nodes[head.account.parent_id].children.remove(head)
        roots.append(head)
        reached.update(n.account.id for _, n in head.walk())

    roots.sort(key=lambda n: n.code)
    return roots


def rollup_balances(roots: Iterable[AccountNode]) -> dict[UUID, Decimal]:
    """
    Subtree totals of current_balance, keyed by account id.

    A parent's total is its own balance plus the totals of its children.
    Balances are summed as stored; callers mixing account types under one
    parent get a plain arithmetic sum.
    """
    totals: dict[UUID, Decimal] = {}

    def _total(node: AccountNode) -> Decimal:
        subtotal = node.account.current_balance
        for child in node.children:
            subtotal += _total(child)
        totals[node.account.id] = subtotal
        return subtotal

    for root in roots:
        _total(root)
    return totals

"""
Helpers for the self-referencing tables (category, comment).

Rows are stored flat with a nullable ``parent_id``; hierarchies are built on
read and never via recursive SQL.
"""


def build_tree(rows) -> list[dict]:
    """
    Link flat rows into nested ``children`` lists (arbitrary depth).

    • One pass to index every row by id, one pass to attach it to its parent.
    • Rows without a parent, or whose parent is not in *rows*, are roots,
      so flattening the result yields every input id exactly once.
    • Sibling order follows the order of *rows*.
    • Rows caught in a parent_id cycle are cut loose and promoted to roots.
    """
    nodes = {r["id"]: {**dict(r), "children": []} for r in rows}
    roots: list[dict] = []
    for node in nodes.values():
        parent = nodes.get(node["parent_id"]) if node["parent_id"] is not None else None
        if parent is None or parent is node:
            roots.append(node)
        else:
            parent["children"].append(node)

    reached = {n["id"] for n in flatten(roots)}
    for node in nodes.values():
        if node["id"] in reached:
            continue
        siblings = nodes[node["parent_id"]]["children"]
        siblings[:] = [c for c in siblings if c is not node]
        roots.append(node)
        reached.update(n["id"] for n in flatten([node]))
    return roots


def flatten(nodes: list[dict]):
    """Depth-first walk over a tree produced by :func:`build_tree`."""
    stack = list(reversed(nodes))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node["children"]))


def descendant_ids(db, table: str, root_id: int) -> set[int]:
    """
    Every id reachable from *root_id* through ``parent_id`` links.

    Breadth-first by frontier: one query per level collects the direct
    children of all frontier nodes.  The visited set stops the walk on data
    that already contains a cycle.
    """
    seen = {root_id}
    found: set[int] = set()
    frontier = [root_id]
    while frontier:
        q_marks = ",".join("?" * len(frontier))
        rows = db.execute(
            f"SELECT id FROM {table} WHERE parent_id IN ({q_marks})", tuple(frontier)
        ).fetchall()
        frontier = []
        for r in rows:
            if r["id"] in seen:
                continue
            seen.add(r["id"])
            found.add(r["id"])
            frontier.append(r["id"])
    return found

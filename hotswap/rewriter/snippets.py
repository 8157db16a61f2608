"""
hotswap Generated Code

Names and templates of the code the rewriter passes emit. The runtime side
of every snippet lives in hotswap.runtime.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from hotswap.types import PropertySnapshot

# Module globals used by rewritten units
ENV = "__hotswap_env__"
DEFINE = "__hotswap_define__"
SNAPSHOTS = "__hotswap_snapshots__"
BOOTSTRAP = "__hotswap_bootstrap__"
HOT = "__hot__"

BOOTSTRAP_MARKER = "# hotswap: runtime bootstrap"
ACCEPT_MARKER = "# hotswap: accept hook"
FINALIZE_MARKER = "# hotswap: finalize"
REMOVED_SUFFIX = "removed by hotswap"


def bootstrap(unit_id: str, snapshots: Iterable[PropertySnapshot]) -> str:
    """Runtime bootstrap, emitted once per unit."""
    data = [snapshot.to_dict() for snapshot in snapshots]
    return (
        f"{BOOTSTRAP_MARKER}\n"
        f"from hotswap.runtime import bootstrap as {BOOTSTRAP}\n"
        f"{ENV} = {BOOTSTRAP}(globals().get({ENV!r}))\n"
        f"{DEFINE} = {ENV}.define\n"
        f"{SNAPSHOTS} = {ENV}.load_snapshots({unit_id!r}, {data!r})\n"
    )


def define_call(
    name: str,
    class_name: str,
    unit_id: str,
    dependencies: Optional[List[str]] = None,
) -> str:
    """Call of the runtime entry point."""
    args = [repr(name), class_name, repr(unit_id)]
    if dependencies:
        bag = ", ".join(f"{dep!r}: {dep}" for dep in dependencies)
        args.append("{" + bag + "}")
    return f"{DEFINE}({', '.join(args)})"


def removed_decorator(decorator: str) -> str:
    """Inert marker left where a registration decorator was."""
    return f"# {decorator} {REMOVED_SUFFIX}"


def accept_hook(unit_id: str) -> str:
    """Update-acceptance hook, appended once per unit."""
    return (
        f"\n{ACCEPT_MARKER}\n"
        f"if globals().get({HOT!r}) is not None:\n"
        f"    {HOT}.accept({ENV}.acceptor({unit_id!r}, {HOT}))\n"
    )


def finalize_call(name: str) -> str:
    """Finalize-patch call for one registration name."""
    return f"{ENV}.finalize_patch({name!r}, {SNAPSHOTS})\n"


def finalize_block(names: Iterable[str]) -> str:
    body = "".join(finalize_call(name) for name in names)
    return f"\n{FINALIZE_MARKER}\n{body}" if body else ""

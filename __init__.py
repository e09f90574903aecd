from __future__ import annotations

"""Repository-root shim so ``import uiimprove`` works from a checkout.

The package itself lives at ``src/uiimprove``. Running commands from the
parent folder would otherwise resolve this directory as an empty namespace
package without the pipeline modules.
"""

from pathlib import Path

__version__ = "0.1.0"

_repo_pkg_dir = Path(__file__).resolve().parent
_src_pkg_dir = _repo_pkg_dir / "src" / "uiimprove"
if _src_pkg_dir.is_dir():
    src_path = str(_src_pkg_dir)
    if src_path not in __path__:
        __path__.append(src_path)

"""Display-side rendering: positional patching and the decorated display tree."""

from .display import DisplayTree
from .patch import PRESERVED_ATTRS, patch_node

__all__ = ["DisplayTree", "PRESERVED_ATTRS", "patch_node"]

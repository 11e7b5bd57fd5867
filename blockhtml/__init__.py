"""
blockhtml -- convert editor block trees to HTML shaped for a CSS framework.

    from blockhtml import convert_blocks
    html = convert_blocks(blocks, css_framework="tailwind")
"""

from blockhtml.kernel import *  # noqa: F401,F403
from blockhtml.kernel import __all__  # noqa: F401

__version__ = "0.1.0"

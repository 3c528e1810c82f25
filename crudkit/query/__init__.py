"""Query layer: request-parameter parsing, the filter model and the SQL compiler.

Everything here is pure (no I/O). Values never reach SQL text; only
whitelisted, backtick-quoted identifiers do.
"""
from __future__ import annotations

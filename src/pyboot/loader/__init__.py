"""Priority loader.

Keyed, cached, deduplicated async task runner grouped by priority tier.
"""
